def format_remaining_time(raw_minutes: str | int | None) -> str:
    """Render a remaining-time value in minutes as "1h 5m" or "45m".

    Returns an empty string for missing, zero or non-numeric input.
    """
    if raw_minutes is None or raw_minutes == "":
        return ""
    try:
        total_minutes = int(raw_minutes)
    except (TypeError, ValueError):
        return ""
    if total_minutes <= 0:
        return ""

    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
