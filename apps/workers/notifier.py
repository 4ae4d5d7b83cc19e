"""Notification fan-out for report events: chat webhooks and the staff chat bot."""

import logging
from datetime import datetime
from typing import Any

import httpx
from aiogram import Bot
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from core.config import Settings
from core.guard import Actor
from core.metrics import notifier_failures_total
from models.report import Report
from services.notifications import Notifier, TransitionEvent

logger = logging.getLogger(__name__)

PRIORITY_COLORS = {"high": 0xFF0000, "medium": 0xFFA500, "low": 0x00FF00}
STATUS_COLORS = {"pending": 0xFFA500, "in_progress": 0x3498DB, "resolved": 0x2ECC71, "rejected": 0x95A5A6}
ESCALATION_COLOR = 0xFF6B35
DIGEST_COLOR = 0x5865F2

TYPE_TITLES = {"player_report": "Player", "bug_report": "Bug", "feedback": "Feedback"}


def _truncate(value: str, limit: int = 1024) -> str:
    return value if len(value) <= limit else value[: limit - 3] + "..."


def _actor_label(actor: Actor | None) -> str:
    if actor is None or not actor.is_authenticated:
        return "System"
    return f"#{actor.id} ({actor.role.value})"


class WebhookNotifier(Notifier):
    """Posts Discord-style embeds to per-type webhooks, plus an urgent channel for high priority."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.webhooks = {
            "player_report": settings.webhook_player_reports,
            "bug_report": settings.webhook_bug_reports,
            "feedback": settings.webhook_feedback,
        }
        self.urgent_webhook = settings.webhook_urgent
        self.client = client or httpx.AsyncClient(timeout=10.0)

    async def send_webhook(self, url: str, embed: dict[str, Any]) -> bool:
        """
        Deliver one embed.

        Returns:
            True if delivered
        """
        if not url:
            logger.debug("Webhook URL not configured, skipping embed")
            return False
        try:
            response = await self.client.post(url, json={"embeds": [embed]})
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Webhook send failed: {e}")
            notifier_failures_total.labels(channel="webhook").inc()
            return False

    def report_embed(self, report: Report) -> dict[str, Any]:
        fields = [
            {"name": "Report ID", "value": f"#{report.id}", "inline": True},
            {"name": "Type", "value": report.type, "inline": True},
            {"name": "Priority", "value": report.priority, "inline": True},
            {"name": "Category", "value": report.category, "inline": True},
            {"name": "Subcategory", "value": report.subcategory or "N/A", "inline": True},
            {"name": "Status", "value": report.status, "inline": True},
        ]
        if report.target_player_id:
            fields.append({"name": "Target Player", "value": report.target_player_id, "inline": True})
        fields.append(
            {
                "name": "Reporter",
                "value": f"<@{report.reporter_external_id}>" if report.reporter_external_id else "Anonymous",
                "inline": False,
            }
        )
        fields.append({"name": "Description", "value": _truncate(report.description), "inline": False})
        return {
            "title": f"New {TYPE_TITLES.get(report.type, 'Player')} Report",
            "color": PRIORITY_COLORS.get(report.priority, PRIORITY_COLORS["medium"]),
            "fields": fields,
            "timestamp": (report.created_at or datetime.now()).isoformat(),
            "footer": {"text": "Report Desk"},
        }

    async def report_created(self, report: Report) -> None:
        embed = self.report_embed(report)
        await self.send_webhook(self.webhooks.get(report.type, ""), embed)

        if report.priority == "high":
            urgent = dict(embed, title=f"URGENT: {embed['title']}")
            await self.send_webhook(self.urgent_webhook, urgent)

    async def status_changed(self, event: TransitionEvent) -> None:
        report = event.report
        embed = {
            "title": "Report Status Updated",
            "color": STATUS_COLORS.get(event.new_status, STATUS_COLORS["pending"]),
            "fields": [
                {"name": "Report ID", "value": f"#{report.id}", "inline": True},
                {"name": "Type", "value": report.type, "inline": True},
                {"name": "Status", "value": f"{event.old_status} → {event.new_status}", "inline": True},
                {"name": "Updated By", "value": _actor_label(event.actor), "inline": True},
            ],
            "footer": {"text": "Report Desk"},
        }
        await self.send_webhook(self.webhooks.get(report.type, ""), embed)

    async def escalation(self, report: Report, reason: str) -> None:
        embed = {
            "title": "Report Escalated",
            "color": ESCALATION_COLOR,
            "fields": [
                {"name": "Report ID", "value": f"#{report.id}", "inline": True},
                {"name": "Type", "value": report.type, "inline": True},
                {"name": "Priority", "value": report.priority, "inline": True},
                {"name": "Reason", "value": _truncate(reason), "inline": False},
            ],
            "footer": {"text": "Report Desk"},
        }
        await self.send_webhook(self.urgent_webhook, embed)

    async def digest(self, summary: dict[str, Any]) -> None:
        embed = {
            "title": f"Staff Digest ({summary.get('days', 7)} days)",
            "color": DIGEST_COLOR,
            "fields": [
                {"name": "New Reports", "value": str(summary.get("new_reports", 0)), "inline": True},
                {"name": "Resolved Reports", "value": str(summary.get("resolved_reports", 0)), "inline": True},
                {"name": "Pending Reports", "value": str(summary.get("pending_reports", 0)), "inline": True},
                {"name": "Resolution Rate", "value": f"{summary.get('resolution_rate', 0)}%", "inline": True},
            ],
            "footer": {"text": "Report Desk"},
        }
        await self.send_webhook(self.urgent_webhook, embed)

    async def close(self) -> None:
        await self.client.aclose()


class BotNotifier(Notifier):
    """Sends short messages about reports to the staff chat via the Telegram bot."""

    def __init__(self, bot: Bot, chat_id: int, dashboard_url: str) -> None:
        self.bot = bot
        self.chat_id = chat_id
        self.dashboard_url = dashboard_url.rstrip("/")

    def report_keyboard(self, report_id: int) -> InlineKeyboardMarkup:
        """Build inline keyboard linking to the report in the dashboard."""
        return InlineKeyboardMarkup(
            inline_keyboard=[
                [InlineKeyboardButton(text="Open report", url=f"{self.dashboard_url}/reports/{report_id}")]
            ]
        )

    async def _send(self, text: str, report_id: int | None = None) -> bool:
        try:
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=text,
                reply_markup=self.report_keyboard(report_id) if report_id is not None else None,
            )
            return True
        except Exception as e:
            logger.error(f"Failed to send staff chat message: {e}")
            notifier_failures_total.labels(channel="bot").inc()
            return False

    async def report_created(self, report: Report) -> None:
        marker = "🔴" if report.priority == "high" else "📝"
        await self._send(
            f"{marker} New {report.type} #{report.id}\n"
            f"Category: {report.category}\n"
            f"Priority: {report.priority.upper()}",
            report.id,
        )

    async def status_changed(self, event: TransitionEvent) -> None:
        await self._send(
            f"🔄 Report #{event.report.id}: {event.old_status} → {event.new_status}\n"
            f"By: {_actor_label(event.actor)}",
            event.report.id,
        )

    async def escalation(self, report: Report, reason: str) -> None:
        await self._send(f"🔺 Report #{report.id} escalated\n{reason}", report.id)

    async def digest(self, summary: dict[str, Any]) -> None:
        await self._send(
            f"📊 Digest ({summary.get('days', 7)} days)\n"
            f"New: {summary.get('new_reports', 0)}\n"
            f"Resolved: {summary.get('resolved_reports', 0)}\n"
            f"Pending: {summary.get('pending_reports', 0)}"
        )

    async def close(self) -> None:
        """Close bot session."""
        await self.bot.session.close()


class FanoutNotifier(Notifier):
    """Forwards each event to every channel; one failing channel never blocks the others."""

    def __init__(self, notifiers: list[Notifier]) -> None:
        self.notifiers = notifiers

    async def _each(self, method: str, *args: Any) -> None:
        for notifier in self.notifiers:
            try:
                await getattr(notifier, method)(*args)
            except Exception:
                logger.exception(f"{type(notifier).__name__}.{method} failed")
                notifier_failures_total.labels(channel=type(notifier).__name__).inc()

    async def report_created(self, report: Report) -> None:
        await self._each("report_created", report)

    async def status_changed(self, event: TransitionEvent) -> None:
        await self._each("status_changed", event)

    async def escalation(self, report: Report, reason: str) -> None:
        await self._each("escalation", report, reason)

    async def digest(self, summary: dict[str, Any]) -> None:
        await self._each("digest", summary)

    async def close(self) -> None:
        await self._each("close")


def build_notifier(settings: Settings) -> Notifier:
    """Create the notifier configured by `settings`."""
    notifiers: list[Notifier] = [WebhookNotifier(settings)]
    if settings.telegram_bot_token and settings.staff_chat_id is not None:
        notifiers.append(
            BotNotifier(Bot(token=settings.telegram_bot_token), settings.staff_chat_id, settings.public_base_url)
        )
    else:
        logger.info("Staff chat bot not configured; bot notifications disabled")
    return FanoutNotifier(notifiers)
