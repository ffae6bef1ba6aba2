import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from roomservice.core.database import get_db
from roomservice.core.errors import NotFoundError, Unauthorized, ValidationError
from roomservice.deps import get_notifier, get_webhook_token
from roomservice.services.realtime import RealtimeNotifier
from roomservice.services.webhook_reconciler import handle_provider_callback

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


@router.get("/xendit")
async def webhook_probe():
    return {"message": "Xendit webhook endpoint is active"}


@router.post("/xendit")
async def xendit_webhook(
    request: Request,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
    expected_token: str = Depends(get_webhook_token),
):
    """Respostas genéricas; o detalhe do erro fica só no log."""
    body = await request.body()
    try:
        result = handle_provider_callback(
            db,
            body,
            request.headers.get("x-callback-token"),
            expected_token=expected_token,
            notifier=notifier,
        )
    except Unauthorized:
        return JSONResponse(status_code=401, content={"error": "Invalid token"})
    except ValidationError:
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})
    except NotFoundError:
        return JSONResponse(status_code=404, content={"error": "Order not found"})
    except Exception:
        db.rollback()
        logger.exception("Webhook processing failed")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return {
        "success": True,
        "order_id": result.order_id,
        "payment_status": result.payment_status,
        "changed": result.changed,
    }
