"""Constants for the in-memory backend."""

DEMO_TOKEN = "demo-token"
ADMIN_USERNAME = "admin"
DEMO_USERNAME = "demo"

DEFAULT_ADDRESS = "Demo Address"
DEFAULT_PINCODE = "000000"

SEED_USERS = (
    {"username": ADMIN_USERNAME, "email": "admin@example.com", "role": "admin"},
    {"username": DEMO_USERNAME, "email": "demo@example.com", "role": "user"},
)

SEED_LOTS = (
    {
        "id": "1",
        "name": "City Center Parking",
        "address": "MG Road",
        "pincode": "560001",
        "price_per_hour": 40,
        "total_spots": 50,
        "available_spots": 18,
        "occupied_spots": 32,
    },
    {
        "id": "2",
        "name": "Mall Parking",
        "address": "Phoenix Mall, Whitefield",
        "pincode": "560066",
        "price_per_hour": 30,
        "total_spots": 80,
        "available_spots": 42,
        "occupied_spots": 38,
    },
    {
        "id": "3",
        "name": "Airport Parking",
        "address": "Kempegowda International Airport",
        "pincode": "560300",
        "price_per_hour": 60,
        "total_spots": 120,
        "available_spots": 65,
        "occupied_spots": 55,
    },
)

# Offsets are hours before backend start; history belongs to DEMO_USERNAME.
SEED_RESERVATIONS = (
    {"id": "101", "lot_id": "1", "status": "active", "started_hours_ago": 3, "hours": None},
    {"id": "102", "lot_id": "2", "status": "completed", "started_hours_ago": 30, "hours": 3},
    {"id": "103", "lot_id": "3", "status": "completed", "started_hours_ago": 54, "hours": 3},
)

CSV_FIELDS = (
    "id",
    "lot_id",
    "lot_name",
    "spot_number",
    "status",
    "start_time",
    "end_time",
    "duration_hours",
    "cost",
)
