"""Render a product page with the engraving option selected."""

import asyncio

from shopify_engraving import bootstrap

PAGE = """
<html>
  <body class="template-product">
    <div class="product-single__price">$25.00</div>
    <form action="/cart/add" method="post">
      <input type="hidden" name="id" value="40001">
      <div class="product-form__quantity"><input name="quantity" value="1"></div>
      <button type="submit" name="add">Add to cart</button>
    </form>
  </body>
</html>
"""


async def main():
    manager = await bootstrap(PAGE, {"engravingPrice": "7.50", "saveToCartAsync": False})
    if manager is None or not manager.initialized:
        print("Engraving not available on this page")
        return

    page = manager.page
    page.click(manager.widget.checkbox)
    page.type_text(manager.widget.textarea, "Happy Birthday")
    await page.idle()

    print("Total:", manager.format(manager.state.total))
    page.submit(manager.form)
    print("Submitted properties:", page.submissions[-1].properties)

    manager.destroy()


if __name__ == "__main__":
    asyncio.run(main())
