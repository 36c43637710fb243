"""
Shared provider clients.

One AsyncOpenAI client per process, created lazily so importing the
package never requires credentials.
"""

import os
from typing import Optional

from openai import AsyncOpenAI

_openai_client: Optional[AsyncOpenAI] = None


def get_openai_client() -> AsyncOpenAI:
    """Get or create the process-wide AsyncOpenAI client."""
    global _openai_client

    if _openai_client is None:
        _openai_client = AsyncOpenAI(
            api_key=os.getenv("OPENAI_API_KEY"),
            timeout=float(os.getenv("OPENAI_TIMEOUT_SECONDS", "600")),
        )

    return _openai_client
