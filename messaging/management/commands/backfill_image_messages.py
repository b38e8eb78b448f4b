import logging
import re

from django.core.management.base import BaseCommand
from django.db import transaction

from messaging.models import Message, MessageType

logger = logging.getLogger(__name__)

IMAGE_EXTENSION_RE = re.compile(r"\.(gif|jpe?g|png|webp|svg)(\?|#|$)", re.IGNORECASE)


def looks_like_image_url(content, media_hosts=()):
    content = (content or "").strip()
    if not content.startswith(("http://", "https://")) or any(c.isspace() for c in content):
        return False
    if IMAGE_EXTENSION_RE.search(content):
        return True
    return any(host in content for host in media_hosts)


class Command(BaseCommand):
    help = "Retype legacy text messages whose content is an uploaded image URL as image messages"

    def add_arguments(self, parser):
        parser.add_argument(
            "--media-host",
            action="append",
            default=[],
            help="Host whose URLs are always images, e.g. the storage bucket host. Repeatable.",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            default=500,
            help="Rows updated per transaction (default: 500)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report matching messages without changing them",
        )

    def handle(self, *args, **kwargs):
        media_hosts = kwargs["media_host"]
        batch_size = kwargs["batch_size"]
        dry_run = kwargs["dry_run"]

        candidates = Message.objects.filter(
            type=MessageType.TEXT, content__startswith="http"
        ).values_list("id", "content")

        matched = [
            message_id
            for message_id, content in candidates.iterator()
            if looks_like_image_url(content, media_hosts)
        ]
        self.stdout.write(f"Found {len(matched)} legacy image messages")

        if dry_run or not matched:
            return

        updated = 0
        for start in range(0, len(matched), batch_size):
            batch = matched[start:start + batch_size]
            with transaction.atomic():
                updated += Message.objects.filter(
                    id__in=batch, type=MessageType.TEXT
                ).update(type=MessageType.IMAGE)

        logger.info(f"Backfilled {updated} legacy image messages")
        self.stdout.write(self.style.SUCCESS(f"Retyped {updated} messages as images"))
