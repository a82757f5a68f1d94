# payment_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Payment Service (dev mock)")


SESSIONS = {
    "cs_test_paid": {
        "id": "cs_test_paid",
        "status": "complete",
        "payment_status": "paid",
        "currency": "usd",
        "amount_subtotal": "150.00",
        "amount_tax": "13.50",
        "amount_shipping": "0.00",
        "amount_discount": "0.00",
        "amount_total": "163.50",
        "line_items": [
            {"product_id": "1", "name": "Print 30x40", "quantity": 2, "unit_price": "50.00", "size_name": "30x40"},
            {"product_id": "2", "variation_id": "2-oak", "name": "Framed print", "quantity": 1, "unit_price": "50.00",
             "frame_name": "Oak"},
        ],
        "shipping_address": {"first_name": "Ada", "line1": "1 Main St", "city": "Springfield", "country": "US"},
        "customer_email": "ada@example.com",
        "payment_intent_id": "pi_test_paid",
        "metadata": {"guest_token": "guest_demo"},
    },
    "cs_test_unpaid": {
        "id": "cs_test_unpaid",
        "status": "open",
        "payment_status": "unpaid",
        "currency": "usd",
        "amount_subtotal": "20.00",
        "line_items": [{"product_id": "3", "name": "Postcard", "quantity": 4, "unit_price": "5.00"}],
        "customer_email": "bob@example.com",
    },
}


@app.get("/checkout/sessions/{session_id}")
def get_session(session_id: str):
    session = SESSIONS.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session
