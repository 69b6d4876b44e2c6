"""Order record store for charter bookings."""
