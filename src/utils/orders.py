"""Order processing stub while payments and fulfilment are not live."""

import asyncio
import logging
import secrets
import string
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

ORDER_ID_PREFIX = "MEME_"
ORDER_ID_ALPHABET = string.ascii_uppercase + string.digits

NEXT_STEPS = [
    "Payment integration coming soon",
    "Print-on-demand fulfillment in development",
    "Order tracking system in progress",
    "Email notifications being set up",
]


def generate_order_id(length: int = 9) -> str:
    """Generate a demo order ID such as ``MEME_K3J9X0QZ1``."""
    return ORDER_ID_PREFIX + "".join(secrets.choice(ORDER_ID_ALPHABET) for _ in range(length))


async def process_order(order: Optional[Mapping[str, Any]] = None, delay: float = 2.0) -> dict:
    """Accept an order in demo mode.

    Nothing is charged or printed; the response tells the user what is coming.

    Args:
        order: Arbitrary order fields (ignored apart from logging)
        delay: Simulated processing time in seconds
    """
    if delay > 0:
        await asyncio.sleep(delay)

    order_id = generate_order_id()
    logger.info(f"Demo order {order_id} received with fields: {sorted((order or {}).keys())}")

    return {
        "success": True,
        "message": "Coming Soon! 🚧",
        "orderId": order_id,
        "details": (
            "Payment processing and print-on-demand fulfillment will be available soon. "
            "Your meme design has been saved!"
        ),
        "status": "demo_mode",
        "nextSteps": list(NEXT_STEPS),
        "estimatedLaunch": "2024-Q1",
    }
