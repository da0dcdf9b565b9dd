from .availability import AvailabilityCalculator, count_free, list_free
from .booking import find_conflict, has_time_overlap, occupies_instant
from .catalog import ResourceCatalog, generate_default_catalogs, load_catalogs
from .engine import BookingEngine
from .errors import (
	BookingError,
	BookingNotFound,
	ConstraintViolation,
	InvalidInterval,
	LedgerEntryMissing,
	ResourceNotFound,
	SlotAlreadyBooked,
	StorageFailure,
)
from .ledger import OverallBookingService, build_details
from .models import (
	CAFETERIA,
	MEETING_ROOM,
	Booking,
	BookingPatch,
	BookingProposal,
	BookingResult,
	LedgerEntry,
	Resource,
)
from .notifications import NotificationDispatcher, NotificationYamlQueue, ReminderNotifier
from .yaml_store import BookingYamlStore

__all__ = [
	"AvailabilityCalculator",
	"count_free",
	"list_free",
	"find_conflict",
	"has_time_overlap",
	"occupies_instant",
	"ResourceCatalog",
	"generate_default_catalogs",
	"load_catalogs",
	"BookingEngine",
	"BookingError",
	"BookingNotFound",
	"ConstraintViolation",
	"InvalidInterval",
	"LedgerEntryMissing",
	"ResourceNotFound",
	"SlotAlreadyBooked",
	"StorageFailure",
	"OverallBookingService",
	"build_details",
	"CAFETERIA",
	"MEETING_ROOM",
	"Booking",
	"BookingPatch",
	"BookingProposal",
	"BookingResult",
	"LedgerEntry",
	"Resource",
	"NotificationDispatcher",
	"NotificationYamlQueue",
	"ReminderNotifier",
	"BookingYamlStore",
]
