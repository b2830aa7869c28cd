from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import Callable, List, Optional

from src.crud import crud_credit_card
from src.models import credit_card as card_models
from src.models.settlement import InvoicePaymentRequest, InvoicePaymentResult
from src.db.core import CreditCardDB, get_db, get_session_factory, NotFoundError
from src.routers.dependencies import get_current_user_id, get_query_cache, settlement_http_error
from src.services import reconciliation, settlement
from src.services.settlement import BillStateConflictError, SettlementStepError
from src.services.query_cache import QueryCache, CREDIT_CARDS

router = APIRouter(
    prefix="/credit-cards",
    tags=["credit-cards"],
)


def _with_derived_used_amounts(
    db: Session,
    cards: List[CreditCardDB],
    background_tasks: BackgroundTasks,
    session_factory: Callable[[], Session],
    fallbacks: Optional[List[int]] = None,
) -> List[card_models.CreditCardResponse]:
    derived = reconciliation.recompute_card_used_amounts(db, cards)
    if fallbacks is not None:
        fallbacks.extend(item.entity_id for item in derived if not item.recomputed)
    if any(item.drifted for item in derived):
        background_tasks.add_task(reconciliation.persist_card_used_amounts, session_factory, derived)

    return [
        card_models.CreditCardResponse.model_validate(card).model_copy(update={"used_amount": item.computed})
        for card, item in zip(cards, derived)
    ]


@router.post("/", response_model=card_models.CreditCardResponse, status_code=status.HTTP_201_CREATED)
def create_credit_card(
    card: card_models.CreditCardCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        db_card = crud_credit_card.create_db_credit_card(db=db, user_id=user_id, card_data=card)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("create_credit_card", user_id)
    return db_card


@router.get("/", response_model=List[card_models.CreditCardResponse])
def read_credit_cards(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Retrieve the current user's cards with used amounts recomputed from purchases.
    """
    fallbacks: List[int] = []

    def load():
        cards = crud_credit_card.read_db_credit_cards(db=db, user_id=user_id)
        return _with_derived_used_amounts(db, cards, background_tasks, session_factory, fallbacks)

    return cache.get_or_load((CREDIT_CARDS, user_id, "list"), load, should_cache=lambda _: not fallbacks)


@router.get("/{card_id}", response_model=card_models.CreditCardResponse)
def read_credit_card(
    card_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    fallbacks: List[int] = []

    def load():
        db_card = crud_credit_card.read_db_credit_card(db=db, card_id=card_id, user_id=user_id)
        if db_card is None:
            return None
        return _with_derived_used_amounts(db, [db_card], background_tasks, session_factory, fallbacks)[0]

    card = cache.get_or_load((CREDIT_CARDS, user_id, card_id), load, should_cache=lambda _: not fallbacks)
    if card is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Credit card not found")
    return card


@router.put("/{card_id}", response_model=card_models.CreditCardResponse)
def update_credit_card(
    card_id: int,
    card: card_models.CreditCardUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        db_card = crud_credit_card.update_db_credit_card(db=db, card_id=card_id, user_id=user_id, card_updates=card)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("update_credit_card", user_id)
    return _with_derived_used_amounts(db, [db_card], background_tasks, session_factory)[0]


@router.delete("/{card_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_credit_card(
    card_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        crud_credit_card.delete_db_credit_card(db=db, card_id=card_id, user_id=user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    cache.invalidate_for("delete_credit_card", user_id)


@router.post("/{card_id}/pay-invoice", response_model=InvoicePaymentResult)
def pay_invoice(
    card_id: int,
    payment: InvoicePaymentRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Pay the card's whole outstanding amount from an account and settle its pending bills.
    """
    try:
        result = settlement.pay_credit_card_invoice(
            db, user_id, credit_card_id=card_id, account_id=payment.account_id, payment_date=payment.payment_date
        )
    except SettlementStepError as e:
        cache.invalidate_for("pay_credit_card_invoice", user_id)
        raise settlement_http_error(e)
    except (NotFoundError, BillStateConflictError, ValueError) as e:
        raise settlement_http_error(e)
    cache.invalidate_for("pay_credit_card_invoice", user_id)
    return result
