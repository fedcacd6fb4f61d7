import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_user
from storefront.api.v1.cart import cart_summary
from storefront.core.config import settings
from storefront.core.exceptions import EmptyCart
from storefront.core.rate_limiter import limiter
from storefront.db.session import get_db
from storefront.models.payment import PaymentMethod
from storefront.models.user import User
from storefront.schemas.order import CODCheckout, ManualCheckout, OrderResponse
from storefront.services import order_service
from storefront.services.payment_service import build_upi_link, generate_upi_qr
from storefront.utils.image_upload import delete_uploaded_file, save_payment_proof
from storefront.utils.response import success

router = APIRouter()


def _form_errors(exc: ValidationError) -> list:
    return [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "Invalid value").removeprefix("Value error, "),
        }
        for error in exc.errors()
    ]


def _order_created_response(order) -> dict:
    return success(
        data={
            "order": OrderResponse.from_order(order),
            "tracking_url": f"{settings.BASE_URL.rstrip('/')}/track/{order.order_number}",
        },
        message="Order placed successfully",
    )


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def get_checkout(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Cart summary plus the UPI link and QR code for manual payment."""
    summary = cart_summary(db, current_user)
    if not summary["items"]:
        raise EmptyCart()

    for line in summary["items"]:
        if not line["is_available"]:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Product {line['product_name']} is no longer available",
            )

    upi_link = build_upi_link(summary["subtotal"], f"Payment by {current_user.username}")
    return success(
        data={
            **summary,
            "total": summary["subtotal"],
            "currency": settings.CURRENCY,
            "upi_id": settings.UPI_ID,
            "upi_link": upi_link,
            "qr_code": generate_upi_qr(upi_link),
            "shipping": {
                "full_name": current_user.full_name,
                "phone": current_user.phone,
                "address": current_user.address,
                "pincode": current_user.pincode,
            },
        },
        message="Checkout details",
    )


@router.post("/cod", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def checkout_cod(
    request: Request,
    payload: CODCheckout,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Place a cash-on-delivery order. The phone must have a verified OTP."""
    order = order_service.place_order(db, current_user, payload, PaymentMethod.COD)
    return _order_created_response(order)


@router.post("/manual", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def checkout_manual(
    request: Request,
    full_name: str = Form(...),
    phone: str = Form(...),
    address: str = Form(...),
    pincode: str = Form(...),
    customer_notes: Optional[str] = Form(None),
    utr_number: Optional[str] = Form(None),
    proof: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Place an order paid by UPI transfer, with the payment screenshot attached."""
    try:
        details = ManualCheckout(
            full_name=full_name,
            phone=phone,
            address=address,
            pincode=pincode,
            customer_notes=customer_notes,
            utr_number=utr_number,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Validation failed", "errors": _form_errors(exc)},
        )

    proof_filename = save_payment_proof(proof)
    try:
        order = order_service.place_order(
            db,
            current_user,
            details,
            PaymentMethod.MANUAL,
            proof_path=proof_filename,
            utr_number=details.utr_number,
        )
    except Exception:
        delete_uploaded_file(os.path.join(settings.PROOF_UPLOAD_DIR, proof_filename))
        raise

    return _order_created_response(order)
