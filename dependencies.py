"""
Composition root for the OTP engine.

Builds every service from one AppSettings instance so configuration is
validated once, at startup, and injected from there on. The HTTP layer
keeps the returned OtpEngine on its app state and calls into it.
"""

from __future__ import annotations

from dataclasses import dataclass

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from config import AppSettings, DatabaseSettings
from infrastructure.email.protocol import NotificationSender
from infrastructure.email.zeptomail import ZeptoMailTemplateSender
from infrastructure.http_client import HttpClient
from repositories.user_repository import UserRepository
from services.mailer_service import MailerService
from services.otp_service import OtpService
from services.password_reset_service import PasswordResetService
from shared.crypto import OtpHasher
from shared.datetime_utils import Clock, utcnow
from shared.logging import setup_logging


@dataclass
class OtpEngine:
    users: UserRepository
    mailer: MailerService
    otp: OtpService
    password_reset: PasswordResetService


async def connect_database(settings: DatabaseSettings) -> tuple[AsyncMongoClient, AsyncDatabase]:
    """Open the async MongoDB client and return it with the configured database."""
    client: AsyncMongoClient = AsyncMongoClient(settings.mongodb_uri, tz_aware=True)
    await client.aconnect()
    return client, client[settings.db_name]


def build_engine(
    settings: AppSettings,
    db: AsyncDatabase,
    sender: NotificationSender | None = None,
    http_client: HttpClient | None = None,
    clock: Clock = utcnow,
) -> OtpEngine:
    """Wire the repository, mailer and OTP services together.

    *sender* defaults to the ZeptoMail adapter over *http_client* (a fresh
    HttpClient when none is given).
    """
    if sender is None:
        sender = ZeptoMailTemplateSender(settings.email, http_client or HttpClient())

    users = UserRepository(db[settings.db.users_collection])
    mailer = MailerService(settings.email, sender)
    otp = OtpService(
        store=users,
        mailer=mailer,
        settings=settings.otp,
        hasher=OtpHasher(rounds=settings.otp.bcrypt_rounds),
        clock=clock,
    )
    password_reset = PasswordResetService(store=users, clock=clock)
    return OtpEngine(
        users=users, mailer=mailer, otp=otp, password_reset=password_reset
    )


async def startup(settings: AppSettings) -> tuple[AsyncMongoClient, OtpEngine]:
    """Configure logging, connect to MongoDB and build the engine.

    The caller owns the returned client and closes it on shutdown.
    """
    setup_logging(settings.logging, env=settings.env)
    client, db = await connect_database(settings.db)
    engine = build_engine(settings, db)
    await engine.users.ensure_indexes()
    return client, engine
