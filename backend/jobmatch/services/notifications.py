import logging
import queue
import smtplib
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from typing import Protocol

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import NOTIFY_CHANNEL, NOTIFY_CLAIM_TTL_S, SmtpConfig
from ..models.match_record import MatchRecord
from ..schemas.matching import MatchResult, NotificationPayload, NotificationReport
from ..utils.error_handlers import NotificationError, PersistenceError
from .matching_engine import pair_ids


logger = logging.getLogger(__name__)

# Hand-offs fail with NotificationError once this many payloads are waiting undrained.
DEFAULT_QUEUE_MAXSIZE = 10_000


class NotificationSink(Protocol):
    def send(self, payload: NotificationPayload) -> None: ...


class QueueNotificationSink:
    """Hands payloads to an in-process queue drained by a delivery worker."""

    def __init__(self, maxsize: int = DEFAULT_QUEUE_MAXSIZE):
        self.queue: queue.Queue[NotificationPayload] = queue.Queue(maxsize=maxsize)

    def send(self, payload: NotificationPayload) -> None:
        try:
            self.queue.put_nowait(payload)
        except queue.Full as e:
            raise NotificationError("Notification queue is full") from e

    def drain(self) -> list[NotificationPayload]:
        out: list[NotificationPayload] = []
        while True:
            try:
                out.append(self.queue.get_nowait())
            except queue.Empty:
                return out


class SmtpNotificationSink:
    """
    Delivers payloads as plain-text e-mail.

    `resolve_email` maps a recipient id to an address; recipients without one fail the
    hand-off so their matches stay unnotified.
    """

    def __init__(self, config: SmtpConfig, *, resolve_email: Callable[[str], str | None], timeout_s: float = 15):
        self.config = config
        self.resolve_email = resolve_email
        self.timeout_s = timeout_s

    def _build_message(self, payload: NotificationPayload, to_email: str) -> EmailMessage:
        title = payload.data.get("job_title") or "a role"
        lines: list[str] = [
            "Hi,",
            "",
            payload.message,
            "",
            "Open your matches page to see the full details.",
            "",
            "Best regards,",
            "Job Matching",
        ]
        msg = EmailMessage()
        msg["Subject"] = f"New job match: {title}"
        msg["From"] = self.config.mail_from
        msg["To"] = to_email
        msg.set_content("\n".join(lines))
        return msg

    def send(self, payload: NotificationPayload) -> None:
        if not self.config.is_configured:
            raise NotificationError("SMTP is not configured (missing SMTP_HOST/SMTP_USER/SMTP_PASS/SMTP_FROM).")
        to_email = self.resolve_email(payload.recipient_id)
        if not to_email:
            raise NotificationError(f"No e-mail address for recipient {payload.recipient_id}")

        msg = self._build_message(payload, to_email)
        try:
            with smtplib.SMTP(self.config.host, self.config.port, timeout=self.timeout_s) as smtp:
                smtp.ehlo()
                if self.config.use_tls:
                    smtp.starttls()
                    smtp.ehlo()
                smtp.login(self.config.user, self.config.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send email: {type(e).__name__}: {e}") from e
        logger.info("Match e-mail sent to recipient=%s", payload.recipient_id)


def _pair_filter(resume_owner_id: str, job_owner_id: str):
    return (
        MatchRecord.resume_owner_id == resume_owner_id,
        MatchRecord.job_owner_id == job_owner_id,
    )


def _claim(db: Session, *, pair: tuple[str, str], token: str, now: datetime, claim_ttl_s: int) -> bool:
    """
    Take the dispatch claim for one unnotified pair. Only one worker can hold it;
    a claim older than `claim_ttl_s` is treated as abandoned.
    """
    stale = now - timedelta(seconds=claim_ttl_s)
    stmt = (
        update(MatchRecord)
        .where(
            *_pair_filter(*pair),
            MatchRecord.notified == False,  # noqa: E712
            or_(MatchRecord.claim_token.is_(None), MatchRecord.claimed_at < stale),
        )
        .values(claim_token=token, claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    try:
        res = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Failed to claim match for notification") from e
    return res.rowcount == 1


def _finish(db: Session, *, pairs: list[tuple[str, str]], token: str, now: datetime, delivered: bool) -> None:
    values = {"claim_token": None, "claimed_at": None}
    if delivered:
        values.update(notified=True, notified_at=now)
    try:
        for pair in pairs:
            res = db.execute(
                update(MatchRecord)
                .where(*_pair_filter(*pair), MatchRecord.claim_token == token)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if delivered and res.rowcount != 1:
                logger.warning("Claim on resume=%s job=%s was lost before it could be marked notified", *pair)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Failed to update notification state") from e


def _build_payload(
    *,
    triggering_kind: str,
    triggering_owner_id: str,
    recipient_id: str,
    claimed: list[MatchResult],
    channel: str,
    subject_title: str | None,
) -> NotificationPayload:
    if triggering_kind == "job":
        m = claimed[0]
        title = subject_title or str(triggering_owner_id)
        return NotificationPayload(
            recipient_id=recipient_id,
            subject_id=str(triggering_owner_id),
            channel=channel,
            message=f"New job match found: {title} (Match Score: {m.match_score}%)",
            data={"job_id": str(triggering_owner_id), "match_score": m.match_score, "job_title": title},
        )

    best = max(claimed, key=lambda x: x.match_score)
    count = len(claimed)
    noun = "match" if count == 1 else "matches"
    return NotificationPayload(
        recipient_id=recipient_id,
        subject_id=str(triggering_owner_id),
        channel=channel,
        message=f"{count} new job {noun} found (top Match Score: {best.match_score}%)",
        data={
            "resume_id": str(triggering_owner_id),
            "matches": [{"job_id": m.owner_id, "match_score": m.match_score} for m in claimed],
        },
    )


def trigger_notifications(
    db: Session,
    sink: NotificationSink,
    *,
    triggering_owner_id: str,
    triggering_kind: str,
    matches: Iterable[MatchResult],
    subject_title: str | None = None,
    channel: str = NOTIFY_CHANNEL,
    claim_ttl_s: int = NOTIFY_CLAIM_TTL_S,
) -> NotificationReport:
    """
    Notify each distinct recipient (the resume owner) about its not-yet-notified matches.

    Rows are claimed before the hand-off and marked notified only after it succeeds, so
    concurrent or repeated triggers dispatch a pair at most once. A failed hand-off
    releases its claims and does not affect other recipients.
    """
    report = NotificationReport()

    # recipient -> matches, deduplicated by counterpart
    by_recipient: dict[str, dict[str, MatchResult]] = {}
    for m in matches:
        resume_id, _ = pair_ids(triggering_kind, triggering_owner_id, m.owner_id)
        by_recipient.setdefault(resume_id, {})[m.owner_id] = m

    if not by_recipient:
        logger.info("No matches to notify for %s:%s", triggering_kind, triggering_owner_id)
        return report

    for recipient_id, group in by_recipient.items():
        token = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        claimed: list[MatchResult] = []
        claimed_pairs: list[tuple[str, str]] = []
        try:
            for m in group.values():
                pair = pair_ids(triggering_kind, triggering_owner_id, m.owner_id)
                if _claim(db, pair=pair, token=token, now=now, claim_ttl_s=claim_ttl_s):
                    claimed.append(m)
                    claimed_pairs.append(pair)
        except PersistenceError as e:
            logger.warning("Could not claim matches for recipient=%s: %s", recipient_id, e.message)
            report.failed[recipient_id] = e.code
            if claimed_pairs:
                _release_quietly(db, pairs=claimed_pairs, token=token, now=now)
            continue

        if not claimed:
            report.skipped.append(recipient_id)
            continue

        payload = _build_payload(
            triggering_kind=triggering_kind,
            triggering_owner_id=triggering_owner_id,
            recipient_id=recipient_id,
            claimed=claimed,
            channel=channel,
            subject_title=subject_title,
        )
        try:
            sink.send(payload)
        except Exception as e:
            logger.warning("Error queuing notification for recipient=%s: %s", recipient_id, e)
            report.failed[recipient_id] = getattr(e, "code", type(e).__name__)
            _release_quietly(db, pairs=claimed_pairs, token=token, now=now)
            continue

        try:
            _finish(db, pairs=claimed_pairs, token=token, now=now, delivered=True)
        except PersistenceError as e:
            # Already handed off; the stale claim keeps the pair from being re-sent until it expires.
            logger.error("Notified recipient=%s but could not mark matches: %s", recipient_id, e.message)
        report.dispatched.append(recipient_id)
        logger.info(
            "Queued notification for recipient=%s on %s:%s (%s match(es))",
            recipient_id,
            triggering_kind,
            triggering_owner_id,
            len(claimed),
        )

    return report


def _release_quietly(db: Session, *, pairs: list[tuple[str, str]], token: str, now: datetime) -> None:
    try:
        _finish(db, pairs=pairs, token=token, now=now, delivered=False)
    except PersistenceError as e:
        # The claim will expire after NOTIFY_CLAIM_TTL_S.
        logger.warning("Could not release notification claim: %s", e.message)
