"""Resume deferred notifications when a moderated entry is merged.

Hosting providers send every pull/merge request event of a repository to
every registered webhook, so most deliveries are irrelevant to this
deployment: other event kinds, other target branches, requests closed without
merging, or requests opened by people rather than by this service. Those are
ignored quietly. Only configuration and authenticity problems are errors.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from ..core.config import Settings
from ..core.dependencies import ClientFactory
from ..core.errors import GatewayError, NoMailingListError
from ..core.security import authenticate_webhook
from ..integrations import BranchNotFoundError
from ..schemas import GitService, MergeRequestInfo, RouteParameters, SiteConfig, WebhookEvent
from .submission import SubmissionPipeline

logger = logging.getLogger(__name__)

MERGE_EVENTS = {
    GitService.GITHUB.value: "pull_request",
    GitService.GITLAB.value: "Merge Request Hook",
}


@dataclass
class WebhookOutcome:
    """Result of one webhook delivery."""

    status: str  # "processed" | "ignored" | "failed"
    reason: str = ""
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def parse_merge_request(service: str, payload: dict[str, Any]) -> MergeRequestInfo:
    """Provider-neutral view of a pull/merge request event payload."""
    if service == GitService.GITHUB.value:
        pull = payload["pull_request"]
        # GitHub reports state "closed" for both merged and rejected requests
        return MergeRequestInfo(
            number=payload.get("number"),
            target_branch=pull["base"]["ref"],
            source_branch=pull["head"]["ref"],
            body=pull.get("body") or "",
            merged=bool(pull.get("merged")),
        )

    attributes = payload["object_attributes"]
    return MergeRequestInfo(
        number=attributes.get("iid"),
        target_branch=attributes["target_branch"],
        source_branch=attributes["source_branch"],
        body=attributes.get("description") or "",
        merged=attributes.get("state") == "merged",
    )


class WebhookMergeCoordinator:
    """Decides what to do with one inbound merge event for a site and branch."""

    def __init__(self, settings: Settings, factory: ClientFactory, parameters: RouteParameters):
        self.settings = settings
        self.factory = factory
        self.parameters = parameters
        self.pipeline = SubmissionPipeline(settings, factory, parameters)
        self.pipeline.set_config_path()

    def _webhook_secret(self, site_config: SiteConfig) -> str | None:
        if self.parameters.service == GitService.GITHUB.value:
            return site_config.github_webhook_secret or self.settings.github_webhook_secret
        return site_config.gitlab_webhook_secret or self.settings.gitlab_webhook_secret

    def _ignore(self, reason: str) -> WebhookOutcome:
        logger.info(f"Ignoring webhook: {reason}")
        return WebhookOutcome(status="ignored", reason=reason)

    async def handle(self, event: WebhookEvent) -> WebhookOutcome:
        service = self.parameters.service

        # Also rejects a route branch that differs from the site's configured branch
        try:
            site_config = await self.pipeline.get_site_config()
        except GatewayError as e:
            logger.warning(f"Webhook rejected, site config unusable: {e.code}")
            return WebhookOutcome(status="failed", reason=e.code, errors=[e.message])

        if not event.event:
            return WebhookOutcome(status="failed", reason="NO_EVENT", errors=["No event found in the request"])

        if event.event != MERGE_EVENTS.get(service):
            return self._ignore(f"event {event.event!r} is not a merge request event")

        try:
            authenticate_webhook(service, self._webhook_secret(site_config), event.raw_body, event.signature)
        except GatewayError as e:
            logger.warning(f"Webhook rejected: {e.code}")
            return WebhookOutcome(status="failed", reason=e.code, errors=[e.message])

        try:
            info = parse_merge_request(service, event.payload)
        except (KeyError, TypeError) as e:
            logger.warning(f"Malformed {service} merge request payload: {e}")
            return WebhookOutcome(status="failed", reason="MALFORMED_PAYLOAD", errors=["Malformed webhook payload"])

        if info.target_branch != site_config.branch:
            return self._ignore(
                f"request #{info.number} targets {info.target_branch}, not {site_config.branch}"
            )
        if not info.merged:
            return self._ignore(f"request #{info.number} not merged")
        if not info.source_branch.startswith(self.settings.review_branch_prefix):
            return self._ignore(f"request #{info.number} was not opened by this service")

        errors = await self._resume(info)

        # GitLab removes the source branch on merge by itself
        if service == GitService.GITHUB.value:
            try:
                await self.pipeline.hosting.delete_branch(info.source_branch)
                logger.info(f"Deleted merged branch {info.source_branch}")
            except BranchNotFoundError:
                logger.info(f"Merged branch {info.source_branch} already deleted")
            except GatewayError as e:
                logger.error(f"Failed to delete merge branch {info.source_branch}: {e}")
                errors.append(f"Failed to delete merge branch {info.source_branch} - {e.message}")

        if errors:
            return WebhookOutcome(status="failed", reason="MERGE_PROCESSING_FAILED", errors=errors)
        return WebhookOutcome(status="processed", reason=f"request #{info.number} merged")

    async def _resume(self, info: MergeRequestInfo) -> list[str]:
        """Decode the continuation, if any, and run the deferred notification."""
        continuation = self.pipeline.codec.decode(info.body)
        if continuation is None:
            logger.info(f"Request #{info.number} carries no continuation")
            return []

        pipeline = SubmissionPipeline(self.settings, self.factory, continuation.parameters)
        pipeline.set_config_path(continuation.config_path)
        try:
            await pipeline.process_merge(continuation)
        except NoMailingListError:
            logger.info(f"Request #{info.number}: entry has no subscribers")
        except GatewayError as e:
            logger.error(f"Error notifying subscribers after merge of #{info.number}: {e}")
            return [e.message]
        return []
