# messaging/services/identity.py
"""
Identity aliasing for the operator's shared support inbox.

The operator ("owner") can write from its own account, from a reserved
system account and from a legacy placeholder account. Every function here
uses the same alias set so the write path (which id is stamped as sender)
and the read path (which ids collapse into one participant) always agree.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import FrozenSet, Optional

from django.conf import settings
from django.contrib.auth import get_user_model

from users.models import Role

logger = logging.getLogger(__name__)


def _as_uuid(value) -> Optional[uuid.UUID]:
    if value in (None, ""):
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        logger.warning(f"Ignoring malformed support identity id: {value!r}")
        return None


@dataclass(frozen=True)
class AliasSet:
    owner_id: Optional[uuid.UUID] = None
    system_id: Optional[uuid.UUID] = None
    legacy_id: Optional[uuid.UUID] = None

    @property
    def ids(self) -> FrozenSet[uuid.UUID]:
        return frozenset(
            i for i in (self.owner_id, self.system_id, self.legacy_id) if i is not None
        )

    def __contains__(self, user_id) -> bool:
        return _as_uuid(user_id) in self.ids


@dataclass(frozen=True)
class DisplayIdentity:
    id: str
    nickname: str
    avatar: Optional[str] = None
    role: Optional[str] = None
    is_support: bool = False
    is_course: bool = False


def get_alias_set() -> AliasSet:
    """Read the alias set from settings, falling back to the first owner account."""
    config = settings.MESSAGING
    owner_id = _as_uuid(config.get("OWNER_USER_ID"))
    if owner_id is None:
        owner_id = (
            get_user_model()
            .objects.filter(role=Role.OWNER)
            .order_by("created_at")
            .values_list("id", flat=True)
            .first()
        )
    return AliasSet(
        owner_id=owner_id,
        system_id=_as_uuid(config.get("SYSTEM_USER_ID")),
        legacy_id=_as_uuid(config.get("LEGACY_USER_ID")),
    )


def resolve_query_identities(viewer_id, viewer_role, alias_set=None) -> FrozenSet[uuid.UUID]:
    viewer_id = _as_uuid(viewer_id)
    if viewer_role != Role.OWNER:
        return frozenset({viewer_id})
    alias_set = alias_set or get_alias_set()
    ids = {viewer_id}
    if alias_set.system_id:
        ids.add(alias_set.system_id)
    if alias_set.legacy_id:
        ids.add(alias_set.legacy_id)
    return frozenset(ids)


def canonical_partner_id(partner_id, viewer_role, alias_set=None) -> uuid.UUID:
    """
    Key a direct conversation partner. Non-owners see every support alias
    as one partner keyed by the owner account.
    """
    partner_id = _as_uuid(partner_id)
    if viewer_role == Role.OWNER:
        return partner_id
    alias_set = alias_set or get_alias_set()
    if partner_id in alias_set.ids and alias_set.owner_id:
        return alias_set.owner_id
    return partner_id


def resolve_partner_identities(partner_id, viewer_role, alias_set=None) -> FrozenSet[uuid.UUID]:
    """All account ids that stand for the given partner from this viewer's side."""
    partner_id = _as_uuid(partner_id)
    if viewer_role == Role.OWNER:
        return frozenset({partner_id})
    alias_set = alias_set or get_alias_set()
    if partner_id in alias_set.ids:
        return alias_set.ids
    return frozenset({partner_id})


def choose_send_identity(sender_id, sender_role, receiver_role, alias_set=None) -> uuid.UUID:
    """Owners writing directly to a plain user post as the system account."""
    sender_id = _as_uuid(sender_id)
    if sender_role == Role.OWNER and receiver_role == Role.USER:
        alias_set = alias_set or get_alias_set()
        if alias_set.system_id:
            return alias_set.system_id
    return sender_id


def support_identity(participant_id, avatar=None) -> DisplayIdentity:
    config = settings.MESSAGING
    return DisplayIdentity(
        id=str(participant_id),
        nickname=config.get("SUPPORT_DISPLAY_NAME", "Support"),
        avatar=config.get("SUPPORT_AVATAR") or avatar,
        role=Role.OWNER,
        is_support=True,
    )


def mask_display(participant, viewer_role, alias_set=None) -> DisplayIdentity:
    alias_set = alias_set or get_alias_set()
    masked = (
        participant.role == Role.OWNER and viewer_role != Role.OWNER
    ) or participant.id == alias_set.system_id
    if masked:
        return support_identity(participant.id, avatar=participant.avatar)
    return DisplayIdentity(
        id=str(participant.id),
        nickname=participant.display_name,
        avatar=participant.avatar,
        role=participant.role,
    )
