"""Create Stripe products and prices in test mode.

Run once inside the backend container:
    python -m app.billing.scripts.create_stripe_products

Creates one product per plan with a monthly and an annual price (annual
billing is discounted 20%) and prints the price IDs to set in .env:
    STRIPE_PRICE_BASIC_MONTHLY=price_xxx
    STRIPE_PRICE_BASIC_ANNUAL=price_xxx
    ...
"""

import asyncio

import stripe
from stripe import StripeClient

from app.billing.plans import PLANS
from app.config import settings

ANNUAL_DISCOUNT = 0.8


def annual_amount_cents(price_monthly_cents: int) -> int:
    return round(price_monthly_cents * 12 * ANNUAL_DISCOUNT)


async def main() -> None:
    if not settings.stripe_secret_key:
        print("ERROR: STRIPE_SECRET_KEY is not set in .env")
        return

    client = StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )

    env_lines: list[str] = []
    for plan in PLANS.values():
        product = await client.v1.products.create_async(
            params={
                "name": f"ServSwap {plan.display_name}",
                "description": "; ".join(plan.features),
                "metadata": {"planId": plan.id},
            }
        )
        print(f"Created product: {product.name} ({product.id})")

        for interval, suffix, amount in (
            ("month", "MONTHLY", plan.price_monthly_cents),
            ("year", "ANNUAL", annual_amount_cents(plan.price_monthly_cents)),
        ):
            price = await client.v1.prices.create_async(
                params={
                    "product": product.id,
                    "unit_amount": amount,
                    "currency": "usd",
                    "recurring": {"interval": interval},
                    "metadata": {"planId": plan.id},
                }
            )
            print(f"  Price: ${amount / 100:.2f}/{interval} ({price.id})")
            env_lines.append(f"STRIPE_PRICE_{plan.id.upper()}_{suffix}={price.id}")

    print("\n--- Add these to your .env ---")
    for line in env_lines:
        print(line)


if __name__ == "__main__":
    asyncio.run(main())
