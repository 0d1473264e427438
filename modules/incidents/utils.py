from uuid import UUID

DEFAULT_NEARBY_RADIUS_KM = 5.0

def is_valid_uuid(value) -> bool:
    try:
        UUID(str(value))
        return True
    except ValueError:
        return False
