from fastapi import FastAPI

from shopify_engraving import AppConfig, MockShopifyClient, ShopifyAdminClient, get_engraving_router

config = AppConfig(
    shopify={
        "shop_domain": "mystore.myshopify.com",
        "access_token": "shpat_xxxxx",
        "api_version": "2024-01",
    },
    engraving={"engravingPrice": "12.50", "maxCharacters": 40},
)

app = FastAPI()
client = ShopifyAdminClient(config, client=MockShopifyClient())
app.include_router(get_engraving_router(client))

# Run: uvicorn examples.simple_app:app --reload
