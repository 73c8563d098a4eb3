import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from pydantic import TypeAdapter, ValidationError

from ffclient.cache import EvaluationCache
from ffclient.config import Options
from ffclient.events import Event, EventBus
from ffclient.exceptions import FetchError
from ffclient.metrics import FETCH_LATENCY, FETCHES
from ffclient.models import AuthSession
from ffclient.schemas import Evaluation, Target

logger = logging.getLogger(__name__)

_evaluation_list = TypeAdapter(List[Evaluation])


def evaluations_url(options: Options, session: AuthSession, target: Target) -> str:
    return (
        f"{options.base_url}/client/env/{quote(session.environment, safe='')}"
        f"/target/{quote(target.identifier, safe='')}/evaluations"
    )


def fetch_all(
    http: requests.Session,
    options: Options,
    session: AuthSession,
    target: Target,
    cache: EvaluationCache,
) -> Dict[str, Any]:
    """Merge the full evaluation set into the cache; raises FetchError and leaves it untouched on failure."""
    start = time.time()
    try:
        resp = http.get(
            evaluations_url(options, session, target),
            headers=session.headers(),
            timeout=options.request_timeout,
        )
        if not resp.ok:
            raise FetchError(f"evaluations request returned {resp.status_code}", kind="bulk", response=resp)
        evaluations = _evaluation_list.validate_python(resp.json())
    except FetchError:
        FETCHES.labels("bulk", "error").inc()
        raise
    except (requests.RequestException, ValidationError, ValueError) as e:
        FETCHES.labels("bulk", "error").inc()
        raise FetchError(f"evaluations request failed: {e}", kind="bulk", cause=e) from e
    finally:
        FETCH_LATENCY.labels("bulk").observe(time.time() - start)

    FETCHES.labels("bulk", "ok").inc()
    cache.update(evaluations)
    return cache.snapshot()


def fetch_one(
    http: requests.Session,
    options: Options,
    session: AuthSession,
    target: Target,
    identifier: str,
    cache: EvaluationCache,
    bus: EventBus,
) -> Optional[Evaluation]:
    """Point fetch one flag and reconcile it into the cache.

    Never raises: failures go out as ERROR events and the cached value, if
    any, is kept.
    """
    url = f"{evaluations_url(options, session, target)}/{quote(identifier, safe='')}"
    start = time.time()
    try:
        resp = http.get(url, headers=session.headers(), timeout=options.request_timeout)
        if not resp.ok:
            FETCHES.labels("single", "error").inc()
            bus.emit(
                Event.ERROR,
                FetchError(
                    f"evaluation {identifier} returned {resp.status_code}",
                    kind="single",
                    identifier=identifier,
                    response=resp,
                ),
            )
            return None
        evaluation = Evaluation.model_validate(resp.json())
    except (requests.RequestException, ValidationError, ValueError) as e:
        logger.error("Feature fetch operation error: %s", e)
        FETCHES.labels("single", "error").inc()
        bus.emit(Event.ERROR, FetchError(f"evaluation {identifier} failed: {e}", kind="single", identifier=identifier, cause=e))
        return None
    finally:
        FETCH_LATENCY.labels("single").observe(time.time() - start)

    FETCHES.labels("single", "ok").inc()
    # flag key in the url is authoritative
    if not cache.set(identifier, evaluation.value):
        logger.debug("Dropping evaluation for %s, client closed", identifier)
        return None
    bus.emit(Event.CHANGED, evaluation)
    return evaluation
