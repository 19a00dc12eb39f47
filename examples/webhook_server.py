"""Example webhook server implementation."""

from shopify_engraving import AppConfig, ShopifyAdminClient
from shopify_engraving.orders import extract_engravings
from shopify_engraving.webhook import WebhookHandler
import json


# Load configuration
with open('config.json') as f:
    config_data = json.load(f)

config = AppConfig(**config_data)

client = ShopifyAdminClient(config)
handler = WebhookHandler(client)


@handler.on('orders/create')
async def on_order_create(shop, order_data):
    """Custom handler run after the engraving is recorded on the order."""
    for engraving in extract_engravings(order_data):
        print(f"[{shop}] order {order_data.get('id')}: engrave {engraving.text!r} on {engraving.product}")

    # Here you could:
    # - Queue the job for the workshop
    # - Email the customer a proof
    # etc.


app = handler.create_fastapi_app()

# Run with: uvicorn examples.webhook_server:app --reload
