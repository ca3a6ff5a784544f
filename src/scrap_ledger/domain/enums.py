from enum import Enum

class TransactionKind(Enum):
    """Which side of the trade a ledger entry records"""
    PURCHASE = "purchase" # scrap in, money owed to a supplier
    SELL = "sell" # scrap out, money owed by a buyer
