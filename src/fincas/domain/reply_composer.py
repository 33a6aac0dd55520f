"""Reply composer - decides and sends the automated answer to one message.

Order for an existing conversation:
1. Single listing card ("quiero ver la finca de X").
2. Available listings product list ("para restrepo del 20 al 21").
3. Text reply generated from knowledge + listings + history; shortened when
   step 1 sent a card.

A brand-new conversation only gets the welcome message.

Each step fails independently: errors are logged and the next step runs.
Security: NEVER log phones or message text.
"""

from dataclasses import dataclass
from typing import Any, Callable

from fincas.ai.client import OpenAIReplyGenerator, ReplyGenerator
from fincas.ai.prompts import build_system_prompt
from fincas.domain import catalogs, conversations
from fincas.domain.intents import IntentParser
from fincas.domain.parsing import RegexIntentParser
from fincas.infra.db import txn
from fincas.infra.repositories.knowledge_repository import search_knowledge
from fincas.infra.repositories.listings_repository import (
    search_available_by_location_and_dates,
    search_listings,
)
from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context
from fincas.whatsapp import ycloud_sender
from fincas.whatsapp.templates import WELCOME_MESSAGE, render

logger = get_logger(__name__)

SINGLE_LISTING_SEARCH_LIMIT = 5
AVAILABLE_LISTINGS_LIMIT = 4
KNOWLEDGE_LIMIT = 5
CONTEXT_LISTINGS_LIMIT = 8
HISTORY_LIMIT = 10


@dataclass
class ReplyOutcome:
    """What was sent for one inbound message."""

    welcome_sent: bool = False
    single_listing_title: str | None = None
    product_list_sent: bool = False
    reply_text: str | None = None
    text_sent: bool = False


class ReplyComposer:
    """Builds and sends automated replies.

    Collaborators are injectable for tests; defaults use OpenAI, the regex
    parser and the YCloud sender.
    """

    def __init__(
        self,
        *,
        generator: ReplyGenerator | None = None,
        parser: IntentParser | None = None,
        send_text: Callable[..., Any] | None = None,
        send_catalog: Callable[..., Any] | None = None,
    ) -> None:
        self.generator = generator or OpenAIReplyGenerator()
        self.parser = parser or RegexIntentParser()
        self._send_text = send_text or ycloud_sender.send_text
        self._send_catalog = send_catalog or ycloud_sender.send_catalog

    # -- catalog cards -----------------------------------------------------

    def send_single_listing_card(self, phone: str, text: str, wamid: str | None) -> str | None:
        """Send the card of one listing the customer asked for by name.

        Returns:
            Title of the listing whose card was sent, or None.
        """
        request = self.parser.single_listing(text)
        if request is None:
            return None

        with txn() as cur:
            results = search_listings(cur, request.term, limit=SINGLE_LISTING_SEARCH_LIMIT)
            if not results:
                return None

            in_catalog = catalogs.listing_ids_in_any_catalog(cur, [r["id"] for r in results])
            listing = next((r for r in results if r["id"] in in_catalog), None)
            if listing is None:
                return None

            catalog = catalogs.get_default_catalog(cur)
            if catalog is None:
                return None

            entries = catalogs.product_ids_for_listings(cur, catalog.id, [listing["id"]])

        if not entries:
            return None

        self._send_catalog(
            to=phone,
            product_ids=[e.product_id for e in entries],
            catalog_id=catalog.external_catalog_id,
            body_text=render("single_listing_card", {"title": listing["title"]}),
            wamid=wamid,
        )
        logger.info(
            "single listing card sent",
            extra={"extra_fields": safe_log_context(listing_id=listing["id"], catalog=catalog.name)},
        )
        return listing["title"]

    def send_available_listings(self, phone: str, text: str, wamid: str | None) -> bool:
        """Send a product list of listings free for the requested days.

        Uses the location's catalog, falling back to the default one when the
        location's catalog has none of the available listings.

        Returns:
            True if a product list was sent.
        """
        request = self.parser.location_and_dates(text)
        if request is None:
            return False

        with txn() as cur:
            available = search_available_by_location_and_dates(
                cur,
                location=request.location,
                entry=request.entry,
                exit=request.exit,
                limit=AVAILABLE_LISTINGS_LIMIT,
            )
            if not available:
                return False

            listing_ids = [item["id"] for item in available]
            all_catalogs = catalogs.list_catalogs(cur)
            catalog = catalogs.select_catalog_for_location(all_catalogs, request.location)
            if catalog is None:
                return False

            entries = catalogs.product_ids_for_listings(cur, catalog.id, listing_ids)
            if not entries:
                default = catalogs.select_default_catalog(all_catalogs)
                if default is not None and default.id != catalog.id:
                    catalog = default
                    entries = catalogs.product_ids_for_listings(cur, catalog.id, listing_ids)

        if not entries:
            return False

        self._send_catalog(
            to=phone,
            product_ids=[e.product_id for e in entries],
            catalog_id=catalog.external_catalog_id,
            body_text=render("available_listings_card"),
            wamid=wamid,
        )
        logger.info(
            "available listings sent",
            extra={
                "extra_fields": safe_log_context(
                    catalog=catalog.name,
                    available=len(available),
                    product_count=len(entries),
                    nights=request.nights(),
                )
            },
        )
        return True

    # -- text reply --------------------------------------------------------

    def compose_text_reply(
        self,
        conversation_id: str,
        text: str,
        *,
        sent_listing_title: str | None = None,
    ) -> str:
        """Generate the text reply and store it as an assistant message.

        Returns:
            Reply text ("" when the model returned nothing; not stored).
        """
        with txn() as cur:
            knowledge = search_knowledge(cur, text, limit=KNOWLEDGE_LIMIT)
            listings = search_listings(cur, text, limit=CONTEXT_LISTINGS_LIMIT)
            history = conversations.list_recent_messages(cur, conversation_id, limit=HISTORY_LIMIT)

        system_prompt = build_system_prompt(
            knowledge, listings, sent_listing_title=sent_listing_title
        )
        messages = [
            {"role": "user" if m["sender"] == "user" else "assistant", "content": m["content"]}
            for m in history
        ]
        reply = self.generator.generate(system_prompt, messages)
        if not reply:
            return ""

        with txn() as cur:
            conversations.insert_message(cur, conversation_id, "assistant", reply)
        return reply

    # -- orchestration -----------------------------------------------------

    def reply(
        self,
        *,
        conversation_id: str,
        phone: str,
        text: str,
        wamid: str | None,
        is_new: bool,
    ) -> ReplyOutcome:
        """Run the reply pipeline for one message. Never raises."""
        outcome = ReplyOutcome()
        log_ctx = safe_log_context(conversation_id=conversation_id)

        if is_new:
            # Welcome is already stored as the conversation's first message
            try:
                self._send_text(to=phone, text=WELCOME_MESSAGE, wamid=wamid)
                outcome.welcome_sent = True
                outcome.text_sent = True
                outcome.reply_text = WELCOME_MESSAGE
            except Exception:
                logger.exception("welcome send failed", extra={"extra_fields": log_ctx})
            return outcome

        try:
            outcome.single_listing_title = self.send_single_listing_card(phone, text, wamid)
        except Exception:
            logger.exception("single listing card failed", extra={"extra_fields": log_ctx})

        try:
            outcome.product_list_sent = self.send_available_listings(phone, text, wamid)
        except Exception:
            logger.exception("available listings send failed", extra={"extra_fields": log_ctx})

        try:
            outcome.reply_text = self.compose_text_reply(
                conversation_id, text, sent_listing_title=outcome.single_listing_title
            )
        except Exception:
            logger.exception("reply generation failed", extra={"extra_fields": log_ctx})
            return outcome

        if outcome.reply_text:
            try:
                self._send_text(to=phone, text=outcome.reply_text, wamid=wamid)
                outcome.text_sent = True
            except Exception:
                logger.exception("reply send failed", extra={"extra_fields": log_ctx})

        return outcome
