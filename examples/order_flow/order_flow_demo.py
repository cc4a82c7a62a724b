#!/usr/bin/env python3
# %% [markdown]
# # Order Flow: Interactive Demo
#
# Walks through the inventory → order → payment → invoice workflow with the
# stepflow engine.  Each section builds a fresh pipeline from configuration
# and prints the rendered response.
#
# Settings come from the environment / a local ``.env``
# (``STEPFLOW_OFFLOAD_WORKERS``, ``STEPFLOW_DEFAULT_TIMEOUT_MS`` ...).

# %%
import asyncio
import logging
import time

from stepflow import (
    Orchestrator,
    PipelineResult,
    Settings,
    StepEvent,
    StepRejected,
)

# %% [markdown]
# ## Step definitions
#
# A step is any callable taking a ``StepContext``.  ``ctx.value`` is what the
# previous step returned; ``ctx.results`` holds every earlier value by name.


# %%
async def check_inventory(ctx):
    await asyncio.sleep(2.0)
    print("    [inventory] checking the inventory")
    return {"sku": ctx.input["sku"], "in_stock": 45}


async def slow_inventory(ctx):
    # Upstream service that takes 3s; only a 1.5s deadline is allowed.
    ctx.cancel_token.add_callback(lambda: print("    [inventory] aborting request"))
    await asyncio.sleep(3.0)
    return {"sku": ctx.input["sku"], "in_stock": 45}


async def create_order(ctx):
    await asyncio.sleep(1.0)
    print(f"    [order]     creating an order ({ctx.value['in_stock']} in stock)")
    return {"order_id": "order-1", "qty": ctx.input["qty"]}


async def charge_payment(ctx):
    await asyncio.sleep(1.0)
    print("    [payment]   charging the payment")
    return {"charged": 100, "order_id": ctx.value["order_id"]}


async def declined_payment(ctx):
    await asyncio.sleep(1.0)
    raise StepRejected("Payment declined by issuer")


async def send_invoice(ctx):
    await asyncio.sleep(2.0)
    order = ctx.results["create_order"]
    print(f"    [invoice]   sending the invoice for {order['order_id']}")
    return {"invoice_for": order["order_id"], "amount": ctx.value["charged"]}


def fraud_score(payment):
    """CPU-bound: runs in a worker process, receives the payment by value."""
    score = 0
    for i in range(20_000_000):
        score = (score + i * payment["charged"]) % 9973
    return {"order_id": payment["order_id"], "fraud_score": score}


# %% [markdown]
# ## Helpers


# %%
def order_config(inventory=check_inventory, payment=charge_payment, with_fraud=False):
    steps = [
        {"name": "check_inventory", "call": inventory, "timeout_ms": 2500},
        {"name": "create_order", "call": create_order},
        {"name": "charge_payment", "call": payment, "timeout_ms": 3000},
    ]
    if with_fraud:
        steps.append({"name": "fraud_score", "call": fraud_score, "offload": True})
        steps.append({"name": "payment_again", "call": lambda ctx: ctx.results["charge_payment"]})
    steps.append({"name": "send_invoice", "call": send_invoice})
    return {"name": "orders", "steps": steps}


def show(orch: Orchestrator, result: PipelineResult, elapsed: float) -> None:
    response = orch.render(result)
    print(f"  → {response.status} after {elapsed:.1f}s: {response.body}\n")


def run(orch: Orchestrator, title: str, config: dict) -> None:
    print(f"== {title}")
    t0 = time.monotonic()
    result = orch.execute(config, {"sku": "A1", "qty": 2})
    show(orch, result, time.monotonic() - t0)


def main() -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    settings = Settings.from_env()

    events: list[StepEvent] = []
    with Orchestrator(settings, listeners=[events.append]) as orch:
        # %% 1. Everything succeeds, strictly in order
        run(orch, "1. happy path", order_config())

        # %% 2. Payment fails, invoice never runs
        run(orch, "2. declined payment", order_config(payment=declined_payment))

        # %% 3. Slow inventory: 1.5s deadline, request aborted
        config = order_config(inventory=slow_inventory)
        config["steps"][0]["timeout_ms"] = 1500
        run(orch, "3. inventory timeout", config)

        # %% 4. CPU-bound fraud check offloaded; the loop stays responsive
        run(orch, "4. offloaded fraud score", order_config(with_fraud=True))

    print("Step events:")
    for event in events:
        print(f"  {event.step_name:<16} {event.kind:<14} {event.duration_ms:8.1f}ms")


if __name__ == "__main__":
    main()
