from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import List, Optional

from src.db.core import CategoryDB, CategoryType, TransactionDB, NotFoundError
from src.models.category import CategoryCreate, CategoryUpdate

def create_db_category(db: Session, user_id: str, category_data: CategoryCreate) -> CategoryDB:
    """Create a new category for the user"""

    existing_category = db.query(CategoryDB).filter(
        CategoryDB.user_id == user_id,
        CategoryDB.name.ilike(category_data.name.strip())
    ).first()
    if existing_category:
        raise ValueError(f"Category with name '{category_data.name}' already exists")

    db_category = CategoryDB(
        user_id=user_id,
        name=category_data.name.strip(),
        category_type=CategoryType(category_data.category_type.value),
        color=category_data.color,
        icon=category_data.icon
    )

    try:
        db.add(db_category)
        db.commit()
        db.refresh(db_category)
        return db_category
    except IntegrityError:
        db.rollback()
        raise ValueError("Category creation failed due to a database constraint.")

def read_db_categories(db: Session, user_id: str) -> List[CategoryDB]:
    return db.query(CategoryDB).filter(CategoryDB.user_id == user_id).order_by(CategoryDB.name).all()

def read_db_category(db: Session, category_id: int, user_id: str) -> Optional[CategoryDB]:
    return db.query(CategoryDB).filter(CategoryDB.id == category_id, CategoryDB.user_id == user_id).first()

def update_db_category(db: Session, category_id: int, user_id: str, category_updates: CategoryUpdate) -> CategoryDB:
    db_category = read_db_category(db, category_id, user_id)
    if not db_category:
        raise NotFoundError(f"Category with id {category_id} not found")

    update_data = category_updates.model_dump(exclude_unset=True)

    if 'name' in update_data:
        new_name = update_data.pop('name').strip()
        existing = db.query(CategoryDB).filter(
            CategoryDB.user_id == user_id,
            CategoryDB.name.ilike(new_name),
            CategoryDB.id != category_id
        ).first()
        if existing:
            raise ValueError(f"Category with name '{new_name}' already exists")
        db_category.name = new_name

    for field, value in update_data.items():
        if field == 'category_type' and value:
            setattr(db_category, field, CategoryType(value.value))
        else:
            setattr(db_category, field, value)

    try:
        db.commit()
        db.refresh(db_category)
        return db_category
    except IntegrityError:
        db.rollback()
        raise ValueError("Category update failed due to a database constraint.")

def delete_db_category(db: Session, category_id: int, user_id: str) -> bool:
    """Delete a category; transactions using it become uncategorized"""
    db_category = read_db_category(db, category_id, user_id)
    if not db_category:
        raise NotFoundError(f"Category with id {category_id} not found")

    try:
        db.query(TransactionDB).filter(
            TransactionDB.category_id == category_id
        ).update({TransactionDB.category_id: None}, synchronize_session=False)
        db.delete(db_category)
        db.commit()
        return True
    except IntegrityError:
        db.rollback()
        raise ValueError("Cannot delete category as it is currently in use.")
