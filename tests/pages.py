"""Product page snippets shared by the storefront tests."""

DAWN_PAGE = """
<html>
<head><title>Silver Pendant</title></head>
<body class="template-product">
  <div class="price">
    <div class="price__regular"><span class="price-item price-item--regular">$25.00</span></div>
    <div class="price__sale"><s class="price-item price-item--compare">$30.00</s></div>
  </div>
  <form action="/cart/add" method="post" id="product-form">
    <input type="hidden" name="id" value="111">
    <div class="product-form__quantity"><input type="number" name="quantity" value="1"></div>
    <div class="product-form__buttons"><button type="submit" name="add">Add to cart</button></div>
  </form>
</body>
</html>
"""

VARIANT_PAGE = """
<html>
<body class="template-product">
  <div class="price">
    <div class="price__regular"><span class="price-item price-item--regular">$25.00</span></div>
  </div>
  <form action="/cart/add" method="post">
    <div class="selector-wrapper">
      <select name="id">
        <option value="111" selected>Small</option>
        <option value="222">Large</option>
      </select>
    </div>
    <div class="product-form__quantity"><input type="number" name="quantity" value="2"></div>
    <button type="submit" name="add">Add to cart</button>
  </form>
</body>
</html>
"""

NO_FORM_PAGE = """
<html>
<body class="template-product">
  <div class="price"><span class="price-item price-item--regular">$25.00</span></div>
</body>
</html>
"""

NO_PRICE_PAGE = """
<html>
<body class="template-product">
  <form action="/cart/add" method="post">
    <input type="hidden" name="id" value="111">
    <button type="submit" name="add">Add to cart</button>
  </form>
</body>
</html>
"""


def with_settings(page: str, settings: str) -> str:
    """Embed an ``engraving-settings`` JSON script in ``page``."""
    script = f'<script id="engraving-settings" type="application/json">{settings}</script>'
    return page.replace("</body>", f"{script}\n</body>")
