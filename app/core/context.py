import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.core.cloudinary import CloudinaryAssetStore
from app.core.config import Settings
from app.database import build_engine, build_session_factory
from app.services.email import EmailService
from app.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Process-wide resources, built once at startup and disposed on shutdown."""

    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    payments: Any
    assets: Any
    notifier: Any

    def close(self) -> None:
        self.engine.dispose()


def build_context(settings: Settings) -> AppContext:
    if not settings.CLOUDINARY_CONFIGURED:
        logger.warning("Cloudinary credentials missing, photo deliveries will fail")
    if not settings.STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY missing, payment intents will fail")

    engine = build_engine(settings)
    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
        payments=StripeGateway(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            currency=settings.STRIPE_CURRENCY,
            webhook_tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
        ),
        assets=CloudinaryAssetStore(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=settings.CLOUDINARY_API_SECRET,
            base_folder=settings.CLOUDINARY_FOLDER,
        ),
        notifier=EmailService(
            api_key=settings.SENDGRID_API_KEY,
            from_email=settings.FROM_EMAIL,
            from_name=settings.FROM_NAME,
            frontend_url=settings.FRONTEND_URL,
        ),
    )
