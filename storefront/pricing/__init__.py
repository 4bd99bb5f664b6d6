"""Dynamic pricing: price computation, sales windows and the price tick."""
