"""One-shot user notices carried in the cookie session until the next render."""
from typing import Dict, List

from fastapi import Request

FLASH_KEY = "_flashes"

SUCCESS = "success"
ERROR = "error"


def flash(request: Request, message: str, category: str = SUCCESS) -> None:
    flashes = request.session.get(FLASH_KEY, [])
    flashes.append([category, message])
    request.session[FLASH_KEY] = flashes


def pop_flashes(request: Request) -> Dict[str, List[str]]:
    """Removes queued messages from the session, grouped by category."""
    grouped: Dict[str, List[str]] = {SUCCESS: [], ERROR: []}
    for category, message in request.session.pop(FLASH_KEY, []):
        grouped.setdefault(category, []).append(message)
    return grouped
