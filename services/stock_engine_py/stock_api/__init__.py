"""HTTP surface of the stock watchlist engine."""
