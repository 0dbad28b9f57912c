from storefront.demo.default_scenario import DEMO_MERCHANT_ID, seed_demo_merchant

__all__ = ["DEMO_MERCHANT_ID", "seed_demo_merchant"]
