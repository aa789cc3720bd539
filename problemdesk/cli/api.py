import os
from typing import Any, Dict, Optional

import httpx
from rich.console import Console

# API URL - can be set through an environment variable
API_URL = os.environ.get("PROBLEMDESK_API_URL", "http://localhost:3001")

DEFAULT_TIMEOUT = 30.0


def error_message(response: httpx.Response) -> str:
    """Extract the `error` field of an API error response, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return response.text


def call_api(
    method: str,
    path: str,
    console: Console,
    json: Optional[Dict[str, Any]] = None,
    params: Optional[Dict[str, Any]] = None,
) -> Optional[Any]:
    """
    Call the problem service and return the decoded JSON body.

    Errors are printed to the console and None is returned.
    """
    try:
        response = httpx.request(
            method,
            f"{API_URL}{path}",
            json=json,
            params={k: v for k, v in (params or {}).items() if v is not None},
            timeout=DEFAULT_TIMEOUT,
        )
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as e:
        console.print(f"[bold red]HTTP error {e.response.status_code}: {error_message(e.response)}")
    except httpx.RequestError as e:
        console.print(f"[bold red]Request error: {str(e)}")
    return None
