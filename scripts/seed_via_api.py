import subprocess
import time
import json
import os
import signal
import requests
import random
from decimal import Decimal
from datetime import date, timedelta
from faker import Faker

# --- Configuration ---
BASE_URL = "http://127.0.0.1:8000"
UVICORN_COMMAND = ["uvicorn", "src.main:app"]
DB_URL = os.environ.get("DATABASE_URL", "sqlite:///ledger.db")
SEED_USER_ID = os.environ.get("SEED_USER_ID", "seed-user")

fake = Faker()

# --- Helper Function for API Requests ---
def run_api_request(method: str, endpoint: str, data: dict = None):
    """Makes an API request as the seed user and returns the JSON response."""
    url = f"{BASE_URL}{endpoint}"
    try:
        # The default json encoder in requests cannot handle Decimal, so we need a custom one
        json_data = json.dumps(data, default=str) if data else None
        headers = {"X-User-Id": SEED_USER_ID}
        if json_data:
            headers['Content-Type'] = 'application/json'
        response = requests.request(method, url, data=json_data, headers=headers, timeout=10)
        response.raise_for_status()
        if not response.text:
            return None
        return response.json()
    except requests.exceptions.HTTPError as e:
        print(f"Error: HTTP {e.response.status_code} for {url}\nResponse: {e.response.text}")
        return None
    except requests.exceptions.RequestException as e:
        print(f"An unexpected error occurred: {e}")
        return None

def money(low: float, high: float) -> Decimal:
    return Decimal(random.uniform(low, high)).quantize(Decimal('0.01'))

def seed_categories():
    print("--- Seeding Categories ---")
    categories_structure = {
        "Salary": "income", "Freelance": "income",
        "Housing": "expense", "Groceries": "expense", "Transportation": "expense",
        "Entertainment": "expense", "Health": "expense", "Utilities": "expense",
    }
    categories = {}
    for name, category_type in categories_structure.items():
        category = run_api_request("POST", "/categories/", {
            "name": name, "category_type": category_type, "color": fake.hex_color()
        })
        if category:
            categories[name] = category
    return categories

def seed_accounts():
    print("--- Seeding Accounts ---")
    account_types = [("checking", "Main Checking"), ("savings", "Emergency Fund")]
    return {
        t[0]: run_api_request("POST", "/accounts/", {
            "name": t[1], "bank": fake.company(), "account_type": t[0], "balance": money(3000, 20000)
        })
        for t in account_types
    }

def seed_transactions(accounts, categories):
    print("--- Seeding Transactions ---")
    if not accounts.get("checking"):
        return
    income_ids = [c['id'] for c in categories.values() if c['category_type'] == "income"]
    expense_ids = [c['id'] for c in categories.values() if c['category_type'] == "expense"]

    for _ in range(100):
        is_income = random.random() < 0.2
        run_api_request("POST", "/transactions/", {
            "account_id": accounts["checking"]["id"],
            "transaction_date": fake.date_between(start_date="-1y", end_date="today").isoformat(),
            "amount": money(500, 3000) if is_income else money(5, 300),
            "transaction_type": "income" if is_income else "expense",
            "status": random.choice(["completed"] * 9 + ["pending"]),
            "description": fake.bs(),
            "category_id": random.choice(income_ids if is_income else expense_ids) if categories else None,
        })

def seed_credit_cards():
    print("--- Seeding Credit Cards ---")
    cards = []
    for name in ["Rewards Card", "Travel Card"]:
        card = run_api_request("POST", "/credit-cards/", {
            "name": name, "bank": fake.company(), "card_limit": money(2000, 10000),
            "due_date": random.randint(1, 28), "closing_date": random.randint(1, 28)
        })
        if card:
            cards.append(card)

    for card in cards:
        for _ in range(random.randint(5, 15)):
            run_api_request("POST", "/transactions/", {
                "credit_card_id": card["id"],
                "transaction_date": fake.date_between(start_date="-60d", end_date="today").isoformat(),
                "amount": money(10, 250),
                "transaction_type": "expense",
                "status": "pending",
                "description": fake.catch_phrase(),
            })
    return cards

def seed_bills(accounts, cards):
    print("--- Seeding Bills ---")
    bills = []
    for description in ["Rent", "Electricity", "Internet", "Phone"]:
        bill = run_api_request("POST", "/bills/", {
            "description": description,
            "amount": money(50, 1200),
            "due_date": (date.today() + timedelta(days=random.randint(-10, 30))).isoformat(),
            "category": "Housing" if description == "Rent" else "Utilities",
            "recurring": True,
        })
        if bill:
            bills.append(bill)

    for card in cards:
        run_api_request("POST", "/bills/", {
            "description": f"Invoice {card['name']}",
            "amount": money(100, 900),
            "due_date": (date.today() + timedelta(days=card["due_date"] % 28)).isoformat(),
            "credit_card_id": card["id"],
        })

    # Settle a couple of bills so the ledger has bill payments to reconcile
    if accounts.get("checking"):
        for bill in bills[:2]:
            run_api_request("POST", f"/bills/{bill['id']}/pay", {"account_id": accounts["checking"]["id"]})

def seed_salaries(accounts):
    print("--- Seeding Salaries ---")
    if not accounts.get("checking"):
        return
    gross = money(4000, 9000)
    run_api_request("POST", "/salaries/", {
        "description": fake.job(), "gross_amount": gross, "net_amount": (gross * Decimal('0.78')).quantize(Decimal('0.01')),
        "account_id": accounts["checking"]["id"], "payment_day": 5
    })

def seed_investments():
    print("--- Seeding Investments ---")
    for name, investment_type in [("Index Fund", "fund"), ("ACME Corp", "stock"), ("Bitcoin", "crypto"), ("Treasury Bond", "fixed")]:
        invested = money(500, 10000)
        run_api_request("POST", "/investments/", {
            "name": name, "investment_type": investment_type,
            "invested_amount": invested, "current_value": (invested * Decimal(str(random.uniform(0.8, 1.3)))).quantize(Decimal('0.01'))
        })

def reset_database():
    """Removes the sqlite file so the server recreates the schema on startup."""
    if not DB_URL.startswith("sqlite:///"):
        print(f"Skipping database reset for non-sqlite URL {DB_URL}")
        return
    path = DB_URL.replace("sqlite:///", "", 1)
    if os.path.exists(path):
        os.remove(path)
        print(f"Removed {path}")

def main():
    """Starts the server, seeds data for one user, and shuts down the server."""

    print("--- Resetting database ---")
    reset_database()

    server_process = subprocess.Popen(UVICORN_COMMAND)
    time.sleep(5)
    print(f"Server started with PID: {server_process.pid}")

    try:
        categories = seed_categories()
        accounts = seed_accounts()
        seed_transactions(accounts, categories)
        cards = seed_credit_cards()
        seed_bills(accounts, cards)
        seed_salaries(accounts)
        seed_investments()
        run_api_request("PUT", "/settings/", {"currency": "BRL", "theme": "dark"})

        report = run_api_request("GET", "/reconciliation")
        if report:
            print(f"Unsettled paid bills: {report['unsettled_paid_bill_ids']}")

        print("\n--- Seeding Complete ---")

    finally:
        if server_process:
            print("\n--- Shutting down server ---")
            os.kill(server_process.pid, signal.SIGTERM)
            server_process.wait()
            print("Server shut down.")

if __name__ == "__main__":
    main()
