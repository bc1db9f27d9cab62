from typing import Dict, Literal
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
import uuid

app = FastAPI(title="Mock Payment Gateway", version="1.0.0")

# reference (our payment id) -> gateway payment record
PAYMENTS: Dict[str, dict] = {}


class PaymentState(BaseModel):
    status: Literal["created", "authorized", "captured", "failed", "refunded"]


@app.get("/health")
def health(): return {"status": "ok"}

@app.put("/gateway/payments/{reference}")
def set_payment(reference: str, body: PaymentState):
    record = PAYMENTS.setdefault(reference, {"id": f"pay_{uuid.uuid4().hex[:14]}", "reference": reference})
    record["status"] = body.status
    return record

@app.get("/gateway/payments/{reference}")
def get_payment(reference: str):
    if reference not in PAYMENTS:
        raise HTTPException(status_code=404, detail="payment not found")
    return PAYMENTS[reference]
