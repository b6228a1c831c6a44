import asyncio
import logging
from typing import Any, Awaitable, List, Set, Tuple

import httpx
from firebase_admin import firestore

from src.core.config import Settings
from src.models.push import (
    ChunkResult,
    ExpoPushEnvelope,
    ExpoPushMessage,
    UnparsedResponse,
    parse_provider_response,
)
from src.services import token_reclaimer

logger = logging.getLogger(__name__)

# Raw provider bodies are cut to this length in log lines
LOG_BODY_LIMIT = 500


def normalize_tokens(to: Any) -> List[str]:
    """
    Turns a single token or a collection of tokens into a list of distinct,
    non-empty strings, keeping first-seen order.
    """
    candidates = to if isinstance(to, (list, tuple, set, frozenset)) else [to]
    return list(
        dict.fromkeys(tok for tok in candidates if isinstance(tok, str) and tok)
    )


def partition(tokens: List[str], size: int) -> List[List[str]]:
    return [tokens[i : i + size] for i in range(0, len(tokens), size)]


def build_headers(settings: Settings) -> dict:
    headers = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    if settings.EXPO_ACCESS_TOKEN:
        headers["Authorization"] = f"Bearer {settings.EXPO_ACCESS_TOKEN}"
    return headers


def classify_tickets(
    chunk: List[str], envelope: ExpoPushEnvelope, http_status: int
) -> Set[str]:
    """
    Logs the per-recipient outcome of one chunk and returns the tokens the
    provider reported as permanently invalid.

    Ticket i belongs to chunk[i]; tickets past the end of the chunk cannot be
    attributed to a token and are only logged.
    """
    if envelope.errors:
        logger.error(
            f"Push response has global errors (status {http_status}): "
            f"{[error.model_dump(exclude_none=True) for error in envelope.errors]}"
        )

    if not envelope.data:
        logger.info(f"Push response (status {http_status}) carried no tickets")
        return set()

    ok_count = 0
    error_count = 0
    invalid_tokens = set()
    for index, ticket in enumerate(envelope.data):
        token = chunk[index] if index < len(chunk) else None
        if ticket.is_ok:
            ok_count += 1
            logger.debug(f"Push ok for token {token} (id: {ticket.id or 'no-id'})")
            continue

        error_count += 1
        logger.error(
            f"Push error for token {token or '(unknown token)'} - code: {ticket.error_code}, "
            f"message: {ticket.message or 'no message'}"
        )
        if token is not None and ticket.is_permanent_failure:
            invalid_tokens.add(token)

    logger.info(
        f"Push summary for chunk: {ok_count} ok, {error_count} error(s) (status {http_status})"
    )
    if invalid_tokens:
        logger.warning(f"Invalid tokens in this chunk: {sorted(invalid_tokens)}")
    return invalid_tokens


async def send_chunk(
    http_client: httpx.AsyncClient,
    settings: Settings,
    message: ExpoPushMessage,
    chunk: List[str],
) -> Tuple[ChunkResult, Set[str]]:
    """
    Sends one provider request for `chunk` and returns its result together
    with the permanently invalid tokens found in the response.
    A transport failure yields a result with status 0 instead of raising.
    """
    payload = [message.to_entry(token) for token in chunk]
    try:
        response = await http_client.post(
            settings.EXPO_PUSH_URL,
            json=payload,
            headers=build_headers(settings),
            timeout=settings.EXPO_PUSH_TIMEOUT_SECONDS,
        )
        raw_body = response.text
    except httpx.HTTPError as e:
        logger.error(f"Push request failed for chunk of {len(chunk)} token(s): {e!r}")
        return _failed_chunk(chunk, e), set()
    except Exception as e:
        logger.error(
            f"Unexpected error sending push chunk of {len(chunk)} token(s): {e}",
            exc_info=True,
        )
        return _failed_chunk(chunk, e), set()

    chunk_result = ChunkResult(
        chunk_size=len(chunk),
        http_status=response.status_code,
        ok=response.is_success,
        raw_response_body=raw_body,
        tokens=chunk,
    )
    if not response.is_success:
        logger.error(
            f"HTTP error for push chunk (status {response.status_code}); "
            f"raw response: {raw_body[:LOG_BODY_LIMIT]}"
        )

    parsed = parse_provider_response(raw_body)
    if isinstance(parsed, UnparsedResponse):
        logger.warning(
            f"Push response (status {response.status_code}) is not an envelope "
            f"({parsed.reason}): {parsed.raw_body[:LOG_BODY_LIMIT]}"
        )
        return chunk_result, set()

    return chunk_result, classify_tickets(chunk, parsed, response.status_code)


def _failed_chunk(chunk: List[str], error: Exception) -> ChunkResult:
    return ChunkResult(
        chunk_size=len(chunk),
        http_status=0,
        ok=False,
        raw_response_body=str(error) or repr(error),
        tokens=chunk,
    )


async def run_post_action(action: Awaitable[None], name: str) -> None:
    """
    Runs a follow-up of a dispatch in its own task. The task is awaited so
    its failure can be logged, but the failure never reaches the caller.
    """
    task = asyncio.ensure_future(action)
    try:
        await task
    except Exception as e:
        logger.error(f"Post-dispatch action '{name}' failed: {e}", exc_info=True)


async def dispatch(
    message: ExpoPushMessage,
    *,
    http_client: httpx.AsyncClient,
    db: firestore.AsyncClient,
    settings: Settings,
) -> List[ChunkResult]:
    """
    Fans a notification out to its recipients in provider-sized chunks.

    Returns one ChunkResult per chunk, in chunk order. Provider and transport
    errors are logged and reflected in the results, never raised. Tokens the
    provider reports as permanently invalid are removed from user profiles
    once every chunk has been processed.
    """
    tokens = normalize_tokens(message.to)
    if not tokens:
        logger.warning("No push tokens to send")
        return []

    chunks = partition(tokens, settings.EXPO_PUSH_CHUNK_SIZE)
    logger.info(f"Sending push '{message.title}' to {len(tokens)} token(s) in {len(chunks)} chunk(s)")

    semaphore = asyncio.Semaphore(settings.EXPO_PUSH_MAX_CONCURRENT_CHUNKS)

    async def _bounded_send(chunk: List[str]) -> Tuple[ChunkResult, Set[str]]:
        async with semaphore:
            return await send_chunk(http_client, settings, message, chunk)

    outcomes = await asyncio.gather(*(_bounded_send(chunk) for chunk in chunks))

    results = [chunk_result for chunk_result, _ in outcomes]
    invalid_tokens = set()
    for _, chunk_invalid in outcomes:
        invalid_tokens.update(chunk_invalid)

    if invalid_tokens:
        logger.warning(
            f"{len(invalid_tokens)} invalid token(s) detected across all chunks"
        )
        await run_post_action(
            token_reclaimer.reclaim(db, invalid_tokens), "invalid token reclamation"
        )

    return results
