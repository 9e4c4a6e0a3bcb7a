# salon/data.py

STAFF_TITLES = [
    "Senior Stylist",
    "Stylist",
    "Junior Stylist",
    "Color Specialist",
    "Assistant",
    "Manager",
]

STAFF_SPECIALTIES = [
    "haircuts",
    "coloring",
    "highlights",
    "balayage",
    "styling",
    "extensions",
    "treatments",
    "updos",
    "bridal",
]

# Monday to Friday 09:00-18:00 with a lunch hour, weekends off
DEFAULT_WEEKLY_SCHEDULE = [
    {
        "day_of_week": day,
        "is_working_day": 1 <= day <= 5,
        "start_time": "09:00" if 1 <= day <= 5 else None,
        "end_time": "18:00" if 1 <= day <= 5 else None,
        "breaks": [{"name": "Lunch", "start_time": "12:00", "end_time": "13:00"}] if 1 <= day <= 5 else [],
    }
    for day in range(7)
]

# appointment status -> statuses it may move to
STATUS_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"cancelled", "completed", "no-show"},
    "completed": set(),
    "cancelled": set(),
    "no-show": set(),
}

# statuses that still hold their time on the staff calendar
BLOCKING_STATUSES = ("pending", "confirmed", "completed", "no-show")
