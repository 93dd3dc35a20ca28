"""The submission pipeline: from posted form fields to a commit or a review.

Order per request:
site config -> submitter auth -> spam check -> field validation -> generated
fields -> transforms -> internal fields -> file -> persist.

With moderation enabled the entry is committed to a new branch and a review
is opened; notification then waits for the merge webhook, which resumes it
from the continuation embedded in the review description. Without moderation
the entry is committed to the target branch and subscribers are notified
straight away.

Subscribe-on-submit runs alongside persistence and never fails the entry:
its failures are reported as secondary errors.
"""

import asyncio
import logging
import uuid
from typing import Any

from ..core.config import Settings
from ..core.dependencies import ClientFactory
from ..core.errors import (
    AuthenticityError,
    ConfigurationError,
    GatewayError,
    NoMailingListError,
    SpamRejectedError,
)
from ..schemas import (
    ConfigPath,
    ConfirmationData,
    DeferredContinuation,
    EntryResult,
    RequestMetadata,
    RouteParameters,
    SecondaryErrors,
    SiteConfig,
    SubmissionRequest,
    load_site_config,
)
from .confirmation import ConfirmationFlow, redeem_confirmation_token
from .continuation import DeferredStateCodec
from .entries import (
    apply_generated_fields,
    apply_internal_fields,
    apply_transforms,
    build_review_body,
    create_file,
    get_path,
    new_file_path,
    resolve_placeholders,
    validate_fields,
)
from .subscriptions import SubscriptionRegistry

logger = logging.getLogger(__name__)


class SubmissionPipeline:
    """Processes entries, merges and subscriptions for one site and branch."""

    def __init__(
        self,
        settings: Settings,
        factory: ClientFactory,
        parameters: RouteParameters,
        metadata: RequestMetadata | None = None,
    ):
        self.settings = settings
        self.factory = factory
        self.parameters = parameters
        self.metadata = metadata or RequestMetadata()
        self.uid = str(uuid.uuid1())
        self.hosting = factory.hosting(
            parameters.service,
            parameters.username,
            parameters.repository,
            parameters.branch,
        )
        self.codec = DeferredStateCodec(factory.authenticator)
        self.config_path: ConfigPath | None = None
        self._site_config: SiteConfig | None = None

    # =========================================================================
    # SITE CONFIG
    # =========================================================================

    def set_config_path(self, config_path: ConfigPath | None = None) -> None:
        if config_path is not None:
            self.config_path = config_path
        else:
            self.config_path = ConfigPath(
                file=self.settings.site_config_file,
                path=self.parameters.property,
            )

    async def get_site_config(self, force: bool = False) -> SiteConfig:
        if self._site_config is not None and not force:
            return self._site_config

        if self.config_path is None:
            raise ConfigurationError("NO_CONFIG_PATH")

        data = await self.hosting.read_file(self.config_path.file)
        raw = get_path(data, self.config_path.path) if self.config_path.path else data
        site_config = load_site_config(raw)

        if site_config.branch != self.parameters.branch:
            raise ConfigurationError(
                "BRANCH_MISMATCH",
                data={"requested": self.parameters.branch, "configured": site_config.branch},
            )

        self._site_config = site_config
        return site_config

    @property
    def default_confirm_url(self) -> str:
        p = self.parameters
        url = (
            f"{self.settings.public_url.rstrip('/')}{self.settings.api_prefix}/confirm/"
            f"{p.service}/{p.username}/{p.repository}/{p.branch}"
        )
        return f"{url}/{p.property}" if p.property else url

    def _subscriptions(self, site_config: SiteConfig) -> SubscriptionRegistry | None:
        if not site_config.notifications.enabled:
            return None
        return SubscriptionRegistry(
            self.settings,
            self.factory.mail_agent_for(site_config),
            self.parameters.username,
            self.parameters.repository,
        )

    def _confirmation(self, registry: SubscriptionRegistry) -> ConfirmationFlow:
        return ConfirmationFlow(
            self.settings,
            self.factory.authenticator,
            registry,
            self.default_confirm_url,
        )

    # =========================================================================
    # CHECKS
    # =========================================================================

    async def check_recaptcha(
        self,
        options: dict[str, Any],
        response: str | None,
        remote_ip: str | None = None,
    ) -> bool:
        """
        Verify the reCAPTCHA answer when the site requires one.

        The form must carry the same site key and (encrypted) secret as the
        site config, so one site's credentials cannot be used for another.
        Returns False when the site does not use reCAPTCHA.
        """
        site_config = await self.get_site_config()
        if not site_config.re_captcha.enabled:
            return False

        credentials = options.get("reCaptcha") or {}
        site_key = credentials.get("siteKey")
        encrypted_secret = credentials.get("secret")
        if not site_key or not encrypted_secret:
            raise ConfigurationError("RECAPTCHA_MISSING_CREDENTIALS")

        try:
            secret = self.factory.authenticator.decrypt_text(encrypted_secret)
            configured_secret = self.factory.authenticator.decrypt_text(site_config.re_captcha.secret or "")
        except AuthenticityError as e:
            raise ConfigurationError("RECAPTCHA_CONFIG_MISMATCH", cause=e) from e

        if site_key != site_config.re_captcha.site_key or secret != configured_secret:
            raise ConfigurationError("RECAPTCHA_CONFIG_MISMATCH")

        if not response or not await self.factory.captcha().verify(secret, response, remote_ip):
            raise AuthenticityError("RECAPTCHA_INVALID_INPUT_RESPONSE")
        return True

    async def _authenticate_submitter(self, site_config: SiteConfig, options: dict[str, Any]) -> dict[str, Any] | None:
        """The hosting user behind `options["auth-token"]`, when the site requires auth."""
        if not site_config.auth.required:
            return None

        encrypted_token = options.get("auth-token")
        if not encrypted_token:
            raise AuthenticityError("AUTH_TOKEN_MISSING")

        try:
            oauth_token = self.factory.authenticator.decrypt_text(encrypted_token)
        except AuthenticityError as e:
            raise AuthenticityError("AUTH_TOKEN_INVALID", cause=e) from e

        client = self.factory.hosting(
            options.get("auth-type") or self.parameters.service,
            self.parameters.username,
            self.parameters.repository,
            oauth_token=oauth_token,
        )
        return await client.get_current_user()

    async def _check_spam(self, site_config: SiteConfig, fields: dict[str, Any]) -> None:
        akismet = site_config.akismet
        if not (akismet.enabled and self.settings.akismet_enabled):
            return

        checker = self.factory.spam_checker()
        if checker is None:
            raise ConfigurationError("SPAM_CHECK_FAILED", data={"reason": "Akismet is not configured"})

        comment = {
            "comment_type": akismet.type,
            "comment_author": fields.get(akismet.author) if akismet.author else None,
            "comment_author_email": fields.get(akismet.author_email) if akismet.author_email else None,
            "comment_author_url": fields.get(akismet.author_url) if akismet.author_url else None,
            "comment_content": fields.get(akismet.content) if akismet.content else None,
        }
        if await checker.check_spam(comment, self.metadata.model_dump()):
            raise SpamRejectedError()

    # =========================================================================
    # ENTRIES
    # =========================================================================

    async def process_entry(self, request: SubmissionRequest) -> EntryResult:
        options = dict(request.options)
        site_config = await self.get_site_config()

        user = await self._authenticate_submitter(site_config, options)
        await self._check_spam(site_config, request.fields)

        submitted = validate_fields(request.fields, site_config)
        fields = apply_transforms(apply_generated_fields(submitted, site_config, user), site_config)
        extended_fields = apply_internal_fields(fields, self.uid, options.get("parent"))

        content = create_file(extended_fields, site_config)
        path = new_file_path(fields, options, site_config, self.uid)
        commit_message = resolve_placeholders(
            site_config.commit_message,
            {"fields": fields, "options": options},
            self.uid,
        )

        registry = self._subscriptions(site_config)
        secondary_errors = SecondaryErrors()

        # The subscriber's address is read before transforms, which may hash it
        subscribe_field = options.get("subscribe")
        subscriber_email = submitted.get(subscribe_field) if subscribe_field else None

        side_channel = self._subscribe_on_submit(
            registry,
            site_config,
            subscriber_email,
            fields,
            extended_fields,
            options,
            secondary_errors,
        )
        persist = self._persist(
            site_config,
            registry,
            path,
            content,
            commit_message,
            fields,
            extended_fields,
            options,
            secondary_errors,
        )
        _, persisted = await asyncio.gather(side_channel, persist, return_exceptions=True)
        if isinstance(persisted, BaseException):
            raise persisted

        return EntryResult(
            fields=fields,
            redirect=options.get("redirect") or None,
            secondary_errors=secondary_errors if secondary_errors.any() else None,
        )

    async def _subscribe_on_submit(
        self,
        registry: SubscriptionRegistry | None,
        site_config: SiteConfig,
        email: str | None,
        fields: dict[str, Any],
        extended_fields: dict[str, Any],
        options: dict[str, Any],
        secondary_errors: SecondaryErrors,
    ) -> None:
        parent = options.get("parent")
        if registry is None or not parent or not email:
            return

        if site_config.notifications.double_opt_in:
            try:
                await self._confirmation(registry).issue(
                    email,
                    fields,
                    extended_fields,
                    options,
                    {"siteName": site_config.name},
                )
            except Exception as e:
                logger.error(f"Error sending subscription confirmation for {parent}: {e}")
                secondary_errors.subscribe_confirm_error = True
        else:
            try:
                await registry.ensure_subscribed(options, email, site_config.notifications.consent_model)
            except Exception as e:
                logger.error(f"Error subscribing to comments on {parent}: {e}")
                secondary_errors.subscribe_error = True

    async def _persist(
        self,
        site_config: SiteConfig,
        registry: SubscriptionRegistry | None,
        path: str,
        content: str,
        commit_message: str,
        fields: dict[str, Any],
        extended_fields: dict[str, Any],
        options: dict[str, Any],
        secondary_errors: SecondaryErrors,
    ) -> Any:
        if site_config.moderation:
            marker = None
            if site_config.notifications.enabled:
                marker = self.codec.encode_marker(
                    DeferredContinuation(
                        config_path=self.config_path,
                        fields=fields,
                        extended_fields=extended_fields,
                        options=options,
                        parameters=self.parameters,
                    )
                )
            return await self.hosting.write_file_and_open_review(
                path,
                content,
                f"{self.settings.review_branch_prefix}{self.uid}",
                commit_message,
                build_review_body(site_config, fields, marker),
            )

        result = await self.hosting.write_file(path, content, self.parameters.branch, commit_message)

        parent = options.get("parent")
        if registry is not None and parent:
            try:
                await registry.notify_if_warranted(parent, fields, extended_fields, options, site_config)
            except NoMailingListError:
                logger.info(f"No subscribers to notify for {parent}")
            except GatewayError as e:
                logger.error(f"Error notifying subscribers of {parent}: {e}")
                secondary_errors.notify_error = True
        return result

    # =========================================================================
    # MERGES AND SUBSCRIPTIONS
    # =========================================================================

    async def process_merge(self, continuation: DeferredContinuation) -> bool:
        """Run the notification that was deferred until the review was merged."""
        self.set_config_path(continuation.config_path)
        site_config = await self.get_site_config()

        registry = self._subscriptions(site_config)
        parent = continuation.options.get("parent")
        if registry is None or not parent:
            logger.info("Merged entry has nobody to notify")
            return False

        return await registry.notify_if_warranted(
            parent,
            continuation.fields,
            continuation.extended_fields,
            continuation.options,
            site_config,
        )

    def redeem_confirmation(self, token: str) -> ConfirmationData:
        return redeem_confirmation_token(self.settings, self.factory.authenticator, token)

    async def create_subscription(self, data: ConfirmationData) -> dict[str, Any]:
        """Subscribe someone who clicked a confirmation link."""
        site_config = await self.get_site_config()
        registry = self._subscriptions(site_config)
        if registry is None:
            raise ConfigurationError("ERROR_CREATING_SUBSCRIPTION", data={"reason": "notifications disabled"})

        return await registry.ensure_subscribed(
            data.model_dump(by_alias=True),
            data.subscriber_email_address,
            site_config.notifications.consent_model,
        )
