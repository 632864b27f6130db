from midatopay.api.routers import general, oracle, payments, transactions, wallet

__all__ = ["general", "oracle", "payments", "transactions", "wallet"]
