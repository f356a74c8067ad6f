from sqlalchemy.orm import Session
from sqlalchemy import func


def generate_custom_ids(db: Session, model, prefix: str, id_field: str, count: int):
    """
    Generate a batch of human-readable unique IDs with a prefix using COUNT instead of ORDER BY.

    :param db: SQLAlchemy session
    :param model: SQLAlchemy model class
    :param prefix: String prefix for the ID (e.g., "M" for match, "T" for team)
    :param id_field: Field name storing the custom ID
    :param count: How many IDs to reserve
    :return: List of generated IDs (e.g., ["M1", "M2", ...])
    """
    # Pending rows must be visible to the count and the collision check
    db.flush()

    column = getattr(model, id_field)
    next_number = db.query(func.count()).select_from(model).scalar() + 1

    ids = []
    while len(ids) < count:
        candidates = [f"{prefix}{n}" for n in range(next_number, next_number + count - len(ids))]

        # Ensure uniqueness by checking which candidates already exist (rare case, after deletes)
        taken = {row[0] for row in db.query(column).filter(column.in_(candidates)).all()}
        ids.extend(candidate for candidate in candidates if candidate not in taken)
        next_number += len(candidates)

    return ids


def generate_custom_id(db: Session, model, prefix: str, id_field: str):
    """Generate a single prefixed ID (e.g., "D1", "S3", "T10000")."""
    return generate_custom_ids(db, model, prefix, id_field, 1)[0]
