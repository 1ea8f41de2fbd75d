"""Constants for the remote REST backend."""

DEFAULT_BASE_URL = "http://localhost:5000"

LOGIN_ENDPOINT = "/api/auth/login"
REGISTER_ENDPOINT = "/api/auth/register"

ADMIN_DASHBOARD_ENDPOINT = "/api/admin/dashboard"
ADMIN_LOTS_ENDPOINT = "/api/admin/parking-lots"
ADMIN_LOT_ENDPOINT = "/api/admin/parking-lots/{lot_id}"
ADMIN_USERS_ENDPOINT = "/api/admin/users"

USER_LOTS_ENDPOINT = "/api/user/parking-lots"
BOOK_ENDPOINT = "/api/user/book"
RELEASE_ENDPOINT = "/api/user/release/{reservation_id}"
MY_RESERVATIONS_ENDPOINT = "/api/user/my-reservations"
EXPORT_CSV_ENDPOINT = "/api/user/export-csv"

# The user listing reports "slots" where the admin listing reports "spots".
SPOT_KEY_ALIASES = {
    "total_spots": ("total_spots", "total_slots"),
    "available_spots": ("available_spots", "available_slots"),
    "occupied_spots": ("occupied_spots", "occupied_slots"),
}
