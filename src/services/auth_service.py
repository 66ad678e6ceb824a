"""Auth flow engine: registration, login, token rotation, verification and reset.

The engine is stateless. Every collaborator (stores, codec, hasher,
notifier) is handed in through the constructor, and every operation is a
sequence of store calls for a single request.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import structlog

from src.config import Settings
from src.models.auth import (
    AuthResponse,
    MessageResponse,
    RegisterResponse,
    TokenPair,
    UserSummary,
)
from src.models.email import EmailTemplate
from src.models.user import TokenType, User, UserRole
from src.services.auth_errors import (
    EmailAlreadyExists,
    EmailAlreadyVerified,
    EmailNotVerified,
    InvalidCredentials,
    RefreshRevoked,
    ResetTokenAlreadyUsed,
    ResetTokenExpired,
    ResetTokenInvalid,
    TokenExpired,
    UserNotFound,
    VerificationTokenExpired,
    VerificationTokenInvalid,
)
from src.services.email_queue import EmailQueue
from src.services.email_service import EmailService
from src.services.oauth_account_store import OAuthAccountStore
from src.services.password_hasher import PasswordHasher
from src.services.refresh_token_store import RefreshTokenStore
from src.services.token_codec import TokenCodec
from src.services.user_service import UserService
from src.services.verification_token_store import VerificationTokenStore

logger = structlog.get_logger(__name__)

REGISTERED_MESSAGE = (
    "Registration successful. Please check your email to verify your account."
)
EMAIL_VERIFIED_MESSAGE = "Email verified successfully"
VERIFICATION_SENT_MESSAGE = "Verification email sent"
FORGOT_PASSWORD_MESSAGE = "If the email exists, a password reset link has been sent"
PASSWORD_RESET_MESSAGE = "Password reset successfully"
LOGGED_OUT_MESSAGE = "Logged out successfully"


def _is_expired(expires_at: datetime) -> bool:
    return expires_at <= datetime.now(timezone.utc)


class AuthService:
    """Orchestrates the credential and token lifecycle."""

    def __init__(
        self,
        users: UserService,
        refresh_tokens: RefreshTokenStore,
        verification_tokens: VerificationTokenStore,
        oauth_accounts: OAuthAccountStore,
        token_codec: TokenCodec,
        password_hasher: PasswordHasher,
        email_service: EmailService,
        email_queue: EmailQueue,
        settings: Settings,
    ):
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.verification_tokens = verification_tokens
        self.oauth_accounts = oauth_accounts
        self.token_codec = token_codec
        self.password_hasher = password_hasher
        self.email_service = email_service
        self.email_queue = email_queue
        self.settings = settings

    # ------------------------------------------------------------------
    # Registration and verification
    # ------------------------------------------------------------------

    async def register(self, name: str, email: str, password: str) -> RegisterResponse:
        """Create an unverified account and mail a verification link.

        Raises:
            EmailAlreadyExists: If the email is taken
        """
        if await self.users.get_by_email(email) is not None:
            raise EmailAlreadyExists()

        password_hash = self.password_hasher.hash_password(password)
        user = await self.users.create_user(
            name=name,
            email=email,
            password_hash=password_hash,
            role=UserRole.USER,
            email_verified=False,
        )

        raw_token = await self._issue_verification_token(user, TokenType.EMAIL_VERIFICATION)
        self._notify(
            user,
            EmailTemplate.VERIFY_EMAIL,
            verification_url=self._verification_url(raw_token),
        )

        logger.info("user_registered", user_id=str(user.id))
        return RegisterResponse(message=REGISTERED_MESSAGE, requires_verification=True)

    async def verify_email(self, token: str) -> MessageResponse:
        """Consume an email verification token and mark the user verified.

        Raises:
            VerificationTokenInvalid: Unknown, wrong type, or already used
            VerificationTokenExpired: Past its expiry
            UserNotFound: If the owning user no longer exists
        """
        record = await self.verification_tokens.find_by_token(token)
        if record is None or record.type != TokenType.EMAIL_VERIFICATION:
            raise VerificationTokenInvalid()
        if record.used:
            raise VerificationTokenInvalid()
        if _is_expired(record.expires_at):
            raise VerificationTokenExpired()

        # Claim first so two concurrent requests cannot both succeed
        if not await self.verification_tokens.mark_used(record.id):
            raise VerificationTokenInvalid()

        user = await self.users.mark_email_verified(record.user_id)
        if user is None:
            raise UserNotFound()

        self._notify(user, EmailTemplate.WELCOME)

        logger.info("email_verified", user_id=str(user.id))
        return MessageResponse(message=EMAIL_VERIFIED_MESSAGE)

    async def resend_verification_email(self, email: str) -> MessageResponse:
        """Invalidate old verification links and send a new one.

        Delivery happens inline: the email is the whole point of the call,
        so a delivery failure is raised to the caller.

        Raises:
            UserNotFound: If no account uses this email
            EmailAlreadyVerified: If the account is already verified
            EmailDeliveryFailed: If the email could not be sent
        """
        result = await self.users.get_by_email(email)
        if result is None:
            raise UserNotFound()

        user, _ = result
        if user.email_verified:
            raise EmailAlreadyVerified()

        raw_token = await self._issue_verification_token(user, TokenType.EMAIL_VERIFICATION)
        await self.email_service.send_email(
            user.email,
            EmailTemplate.VERIFY_EMAIL,
            {
                "name": user.name,
                "verification_url": self._verification_url(raw_token),
            },
        )

        logger.info("verification_email_resent", user_id=str(user.id))
        return MessageResponse(message=VERIFICATION_SENT_MESSAGE)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> AuthResponse:
        """Verify credentials and issue a token pair.

        Unknown email and wrong password produce the same error, and both
        paths pay for one bcrypt check.

        Raises:
            InvalidCredentials: Unknown email or wrong password
            EmailNotVerified: Correct credentials but unverified email
        """
        result = await self.users.get_by_email(email)
        if result is None:
            self.password_hasher.burn_verification(password)
            logger.warning("login_failed", reason="invalid_credentials")
            raise InvalidCredentials()

        user, password_hash = result
        if not self.password_hasher.verify_password(password, password_hash):
            logger.warning("login_failed", reason="invalid_credentials", user_id=str(user.id))
            raise InvalidCredentials()

        if not user.email_verified:
            logger.warning("login_failed", reason="email_not_verified", user_id=str(user.id))
            raise EmailNotVerified()

        pair = await self.issue_tokens(user)
        logger.info("user_logged_in", user_id=str(user.id))
        return AuthResponse(**pair.model_dump(), user=UserSummary.from_user(user))

    async def refresh(self, refresh_token: str) -> AuthResponse:
        """Rotate a refresh token: revoke the presented one, issue a new pair.

        Raises:
            RefreshRevoked: Unknown, already revoked, or lost a concurrent rotation
            TokenExpired: Past its expiry
            UserNotFound: If the owning user no longer exists
        """
        stored = await self.refresh_tokens.find(refresh_token)
        if stored is None or stored.revoked:
            logger.warning(
                "refresh_rejected",
                reason="not_found" if stored is None else "revoked",
            )
            raise RefreshRevoked()

        if _is_expired(stored.expires_at):
            logger.warning("refresh_rejected", reason="expired", user_id=str(stored.user_id))
            raise TokenExpired()

        # Revocation must land before a new token exists; zero rows means a
        # concurrent refresh already consumed this token
        if not await self.refresh_tokens.revoke(stored.id):
            logger.warning("refresh_rejected", reason="race", user_id=str(stored.user_id))
            raise RefreshRevoked()

        user = await self.users.get_by_id(stored.user_id)
        if user is None:
            raise UserNotFound()

        pair = await self.issue_tokens(user)
        logger.info("refresh_token_rotated", user_id=str(user.id))
        return AuthResponse(**pair.model_dump(), user=UserSummary.from_user(user))

    async def logout(self, refresh_token: str) -> MessageResponse:
        """Revoke a refresh token. Always reports success."""
        try:
            stored = await self.refresh_tokens.find(refresh_token)
            if stored is not None and not stored.revoked:
                await self.refresh_tokens.revoke(stored.id)
                logger.info("user_logged_out", user_id=str(stored.user_id))
        except Exception as e:
            logger.warning("logout_revoke_failed", error=str(e))

        return MessageResponse(message=LOGGED_OUT_MESSAGE)

    async def oauth_login(
        self,
        provider: str,
        provider_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> AuthResponse:
        """Log in with an identity already proven by an external provider.

        Links the provider account to an existing user with the same email,
        or creates a new user, then issues a token pair.

        Raises:
            UserNotFound: If a linked account points at a deleted user
        """
        account = await self.oauth_accounts.find_by_provider(provider, provider_id)

        if account is not None:
            user = await self.users.get_by_id(account.user_id)
            if user is None:
                raise UserNotFound()
        else:
            existing = await self.users.get_by_email(email) if email else None
            if existing is not None:
                user, _ = existing
            else:
                user = await self.users.create_user(
                    name=name or "Unknown",
                    email=email or f"{provider}-{provider_id}@users.noreply",
                    password_hash="",
                    role=UserRole.USER,
                    email_verified=email is not None,
                )
            await self.oauth_accounts.create(provider, provider_id, user.id)

        pair = await self.issue_tokens(user)
        logger.info("oauth_login", provider=provider, user_id=str(user.id))
        return AuthResponse(**pair.model_dump(), user=UserSummary.from_user(user))

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def forgot_password(self, email: str) -> MessageResponse:
        """Mail a reset link if the account exists.

        The response is identical whether or not the email is known.
        """
        result = await self.users.get_by_email(email)
        if result is None:
            logger.info("password_reset_requested", known=False)
            return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

        user, _ = result
        raw_token = await self._issue_verification_token(user, TokenType.PASSWORD_RESET)
        self._notify(
            user,
            EmailTemplate.FORGOT_PASSWORD,
            reset_url=self._reset_url(raw_token),
        )

        logger.info("password_reset_requested", known=True, user_id=str(user.id))
        return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

    async def reset_password(self, token: str, new_password: str) -> MessageResponse:
        """Consume a reset token, store the new password, end all sessions.

        Raises:
            ResetTokenInvalid: Unknown or wrong type
            ResetTokenAlreadyUsed: Already consumed
            ResetTokenExpired: Past its expiry
            UserNotFound: If the owning user no longer exists
        """
        record = await self.verification_tokens.find_by_token(token)
        if record is None or record.type != TokenType.PASSWORD_RESET:
            raise ResetTokenInvalid()
        if record.used:
            raise ResetTokenAlreadyUsed()
        if _is_expired(record.expires_at):
            raise ResetTokenExpired()

        if not await self.verification_tokens.mark_used(record.id):
            raise ResetTokenAlreadyUsed()

        password_hash = self.password_hasher.hash_password(new_password)
        user = await self.users.update_password(record.user_id, password_hash)
        if user is None:
            raise UserNotFound()

        revoked = await self.end_sessions(user.id)

        self._notify(
            user,
            EmailTemplate.RESET_PASSWORD,
            login_url=f"{self.settings.frontend_url}/login",
        )

        logger.info("password_reset", user_id=str(user.id), sessions_revoked=revoked)
        return MessageResponse(message=PASSWORD_RESET_MESSAGE)

    # ------------------------------------------------------------------
    # Account updates
    # ------------------------------------------------------------------

    async def update_profile(
        self,
        user: User,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> User:
        """Apply a user's own changes to their account.

        A new email address starts unverified and gets a fresh verification
        link. A new password signs out every session.

        Raises:
            EmailAlreadyExists: If the new email belongs to another account
            UserNotFound: If the account was deleted meanwhile
        """
        return await self._update_account(user, name=name, email=email, password=password)

    async def admin_update_user(
        self,
        user_id: UUID,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        role: Optional[UserRole] = None,
        email_verified: Optional[bool] = None,
    ) -> User:
        """Apply an administrator's changes to any account.

        Same rules as update_profile, except that an explicit email_verified
        overrides the reset that an email change otherwise triggers.

        Raises:
            EmailAlreadyExists: If the new email belongs to another account
            UserNotFound: If there is no such user
        """
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return await self._update_account(
            user,
            name=name,
            email=email,
            password=password,
            role=role,
            email_verified=email_verified,
        )

    async def end_sessions(self, user_id: UUID) -> int:
        """Revoke every outstanding refresh token of a user."""
        return await self.refresh_tokens.revoke_all_for_user(user_id)

    async def _update_account(
        self,
        user: User,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        role: Optional[UserRole] = None,
        email_verified: Optional[bool] = None,
    ) -> User:
        email_changed = email is not None and email != user.email
        if email_changed:
            if await self.users.get_by_email(email) is not None:
                raise EmailAlreadyExists()
            if email_verified is None:
                email_verified = False

        updated = await self.users.update_user(
            user_id=user.id,
            name=name,
            email=email if email_changed else None,
            password_hash=(
                self.password_hasher.hash_password(password) if password is not None else None
            ),
            role=role,
            email_verified=email_verified,
        )
        if updated is None:
            raise UserNotFound()

        revoked = await self.end_sessions(user.id) if password is not None else 0

        if email_changed and not updated.email_verified:
            raw_token = await self._issue_verification_token(
                updated, TokenType.EMAIL_VERIFICATION
            )
            self._notify(
                updated,
                EmailTemplate.VERIFY_EMAIL,
                verification_url=self._verification_url(raw_token),
            )

        logger.info(
            "account_updated",
            user_id=str(user.id),
            email_changed=email_changed,
            password_changed=password is not None,
            sessions_revoked=revoked,
        )
        return updated

    # ------------------------------------------------------------------
    # Token issuance
    # ------------------------------------------------------------------

    async def issue_tokens(self, user: User) -> TokenPair:
        """Sign an access token and persist a fresh refresh token for a user."""
        access_token = self.token_codec.create_access_token(user.id, user.role)
        refresh_token = self.token_codec.generate_refresh_token()
        expires_at = datetime.now(timezone.utc) + self.settings.refresh_token_expires_in

        await self.refresh_tokens.create(user.id, refresh_token, expires_at)

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=self.settings.access_token_expires_seconds,
        )

    async def _issue_verification_token(self, user: User, token_type: TokenType) -> str:
        """Replace any outstanding token of this type with a new one."""
        await self.verification_tokens.delete_by_user_and_type(user.id, token_type)

        raw_token = self.token_codec.generate_verification_token()
        if token_type == TokenType.EMAIL_VERIFICATION:
            lifetime = self.settings.email_verification_expires_in
        else:
            lifetime = self.settings.password_reset_expires_in

        await self.verification_tokens.create(
            user.id,
            raw_token,
            token_type,
            datetime.now(timezone.utc) + lifetime,
        )
        return raw_token

    def _notify(self, user: User, template: EmailTemplate, **variables) -> None:
        """Hand an email to the background queue. Failures are logged only."""
        try:
            self.email_queue.enqueue(user.email, template, {"name": user.name, **variables})
        except Exception as e:
            logger.error(
                "email_enqueue_failed",
                user_id=str(user.id),
                template=template.value,
                error=str(e),
            )

    def _verification_url(self, token: str) -> str:
        return f"{self.settings.base_url}/auth/verify-email/{token}"

    def _reset_url(self, token: str) -> str:
        return f"{self.settings.base_url}/auth/reset-password/{token}"


def build_auth_service(email_queue: EmailQueue, settings: Settings) -> AuthService:
    """Assemble an AuthService over the PostgreSQL stores."""
    return AuthService(
        users=UserService(),
        refresh_tokens=RefreshTokenStore(),
        verification_tokens=VerificationTokenStore(),
        oauth_accounts=OAuthAccountStore(),
        token_codec=TokenCodec(settings),
        password_hasher=PasswordHasher(),
        email_service=email_queue.email_service,
        email_queue=email_queue,
        settings=settings,
    )
