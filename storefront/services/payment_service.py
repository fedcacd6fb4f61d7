import base64
from io import BytesIO
from typing import Optional
from urllib.parse import quote

import qrcode
import structlog
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.models.payment import Payment

logger = structlog.get_logger()


def build_upi_link(amount: float, note: str, upi_id: Optional[str] = None,
                   payee_name: Optional[str] = None) -> str:
    """UPI deep link understood by Indian payment apps."""
    upi_id = upi_id or settings.UPI_ID
    payee_name = payee_name or settings.MERCHANT_NAME
    return (
        f"upi://pay?pa={quote(upi_id, safe='@.')}"
        f"&pn={quote(payee_name)}"
        f"&am={amount:.2f}"
        f"&tn={quote(note)}"
        f"&cu=INR"
    )


def generate_upi_qr(upi_link: str) -> str:
    """Render the link as a PNG QR code and return it as a data URL."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=10,
        border=4,
    )
    qr.add_data(upi_link)
    qr.make(fit=True)

    qr_img = qr.make_image(fill_color="black", back_color="white")

    img_buffer = BytesIO()
    qr_img.save(img_buffer, format="PNG")

    qr_base64 = base64.b64encode(img_buffer.getvalue()).decode()
    return f"data:image/png;base64,{qr_base64}"


def ensure_utr_unused(db: Session, utr_number: Optional[str]) -> None:
    if not utr_number:
        return
    exists = db.query(Payment.id).filter(Payment.utr_number == utr_number).first()
    if exists:
        logger.warning("duplicate_utr_rejected", utr_number=utr_number)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This UTR number has already been used",
        )
