"""
Company Portal
Collaborator directory service.

Resolves acting users and notification recipients to ``Collaborator`` rows.
Emails are compared after normalisation: lower-cased, with configured
domain aliases (``EMAIL_DOMAIN_ALIASES="old.example=new.example"``) mapped
onto their canonical domain, so a person keeps one identity across both
domains.
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from flask import current_app, has_app_context
from sqlalchemy import func, select

from portal.core.exceptions import AuthResolutionError, ConflictError, ValidationError
from portal.models import db
from portal.models.collaborator import Collaborator

logger = logging.getLogger(__name__)


# ── Email normalisation ─────────────────────────────────────────────────────


def _domain_aliases() -> dict[str, str]:
    raw = current_app.config.get("EMAIL_DOMAIN_ALIASES", "") if has_app_context() else ""
    aliases = {}
    for pair in (raw or "").split(","):
        if "=" not in pair:
            continue
        alias, canonical = (p.strip().lower().lstrip("@") for p in pair.split("=", 1))
        if alias and canonical:
            aliases[alias] = canonical
    return aliases


def normalize_email(email: str | None) -> str | None:
    """Lower-case *email* and map an aliased domain to its canonical one."""
    if not email or not email.strip():
        return None
    email = email.strip().lower()
    local, sep, domain = email.rpartition("@")
    if not sep:
        return email
    canonical = _domain_aliases().get(domain)
    return f"{local}@{canonical}" if canonical else email


def validate_address(email: str | None, field: str = "email") -> str:
    """Syntax-check *email* and return it lower-cased.

    Domain aliases are left to ``normalize_email``.
    """
    try:
        valid = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email for {field}: {exc}", details={field: str(exc)}) from None
    return valid.normalized.lower()


def emails_match(first: str | None, second: str | None) -> bool:
    if not first or not second:
        return False
    return normalize_email(first) == normalize_email(second)


# ── Lookups ─────────────────────────────────────────────────────────────────


def find_by_email(email: str | None) -> Collaborator | None:
    """Return the collaborator whose normalised email matches *email*."""
    target = normalize_email(email)
    if not target:
        return None
    # Exact match covers the common case without scanning the directory
    hit = db.session.execute(
        select(Collaborator).where(func.lower(Collaborator.email) == target)
    ).scalar_one_or_none()
    if hit is not None:
        return hit
    for collab in db.session.execute(select(Collaborator)).scalars():
        if normalize_email(collab.email) == target:
            return collab
    return None


def filter_by_emails(emails) -> list[Collaborator]:
    """Collaborators matching any of *emails*, in directory order."""
    wanted = {normalize_email(e) for e in emails or [] if normalize_email(e)}
    if not wanted:
        return []
    rows = db.session.execute(select(Collaborator).order_by(Collaborator.id)).scalars()
    return [c for c in rows if normalize_email(c.email) in wanted]


def get_by_user_id(user_id: str | None) -> Collaborator | None:
    if not user_id:
        return None
    return db.session.execute(
        select(Collaborator).where(Collaborator.user_id == str(user_id))
    ).scalar_one_or_none()


def get_many_by_user_ids(user_ids) -> dict[str, Collaborator]:
    ids = {str(u) for u in user_ids or [] if u}
    if not ids:
        return {}
    rows = db.session.execute(
        select(Collaborator).where(Collaborator.user_id.in_(ids))
    ).scalars()
    return {c.user_id: c for c in rows}


def resolve_recipients(identities) -> list[Collaborator]:
    """Resolve a mixed list of emails and user ids, dropping unknowns.

    Routing rules name recipients by email; the admin UI sometimes stores
    user ids instead. Duplicates collapse to one collaborator.
    """
    resolved: dict[str, Collaborator] = {}
    emails = [i for i in identities or [] if i and "@" in str(i)]
    user_ids = [i for i in identities or [] if i and "@" not in str(i)]
    for collab in filter_by_emails(emails):
        resolved[collab.user_id] = collab
    resolved.update(get_many_by_user_ids(user_ids))
    unknown = len(set(identities or [])) - len(resolved)
    if unknown > 0:
        logger.debug("resolve_recipients: %d identities did not match a collaborator", unknown)
    return list(resolved.values())


# ── Actor resolution ────────────────────────────────────────────────────────


def resolve_actor(user_id: str | None) -> Collaborator:
    """Return the collaborator for *user_id* or raise ``AuthResolutionError``."""
    collab = get_by_user_id(user_id)
    if collab is None:
        raise AuthResolutionError(user_id)
    return collab


def resolve_submitter(email: str | None) -> Collaborator:
    """Return the collaborator for *email* or raise ``AuthResolutionError``."""
    collab = find_by_email(email)
    if collab is None:
        raise AuthResolutionError(email)
    return collab


# ── Admin ───────────────────────────────────────────────────────────────────


def create_collaborator(data: dict) -> Collaborator:
    """Create a directory entry. ``user_id``, ``name`` and ``email`` are required."""
    user_id = str(data.get("user_id") or "").strip()
    name = (data.get("name") or "").strip()
    raw_email = (data.get("email") or "").strip()
    missing = [k for k, v in (("user_id", user_id), ("name", name), ("email", raw_email)) if not v]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={k: "required" for k in missing},
        )
    email = normalize_email(validate_address(raw_email))
    if get_by_user_id(user_id) is not None:
        raise ConflictError("Collaborator", "user_id", user_id)
    if find_by_email(email) is not None:
        raise ConflictError("Collaborator", "email", email)

    collab = Collaborator(
        user_id=user_id,
        name=name,
        email=email,
        area=(data.get("area") or None),
        is_active=bool(data.get("is_active", True)),
    )
    db.session.add(collab)
    db.session.commit()
    logger.info("Collaborator created user_id=%s", user_id)
    return collab


def list_collaborators(active_only: bool = False) -> list[Collaborator]:
    stmt = select(Collaborator).order_by(Collaborator.name)
    if active_only:
        stmt = stmt.where(Collaborator.is_active.is_(True))
    return list(db.session.execute(stmt).scalars())
