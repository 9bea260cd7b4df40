from dynamic_ticketing.booking.coordinator import BookingCoordinator

__all__ = ["BookingCoordinator"]
