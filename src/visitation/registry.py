"""
Person registry seam.

Registration, approval and editing of visitors and guests belong to the
registry service; the engine only needs to create a record and look one up
by (person_id, person_type).
"""

import datetime
import logging
from typing import Optional

from sqlalchemy.orm import Session

from .exceptions import PersonNotFoundError, ValidationError
from .models import IdCounter, Person, PersonType

logger = logging.getLogger(__name__)


def normalize_person_type(person_type) -> str:
    """Accepts 'visitor'/'guest' (any case) or a PersonType."""
    value = person_type.value if isinstance(person_type, PersonType) else str(person_type or "").lower()
    if value not in (PersonType.VISITOR.value, PersonType.GUEST.value):
        raise ValidationError(
            "Invalid person type, expected 'visitor' or 'guest'",
            field="person_type", value=person_type,
        )
    return value


def next_person_id(db: Session, person_type: str) -> str:
    """Next zero-padded sequential id for the type, allocated in the caller's transaction."""
    counter = (
        db.query(IdCounter)
        .filter(IdCounter.name == person_type)
        .with_for_update()
        .one_or_none()
    )
    if counter is None:
        counter = IdCounter(name=person_type, seq=0)
        db.add(counter)
    counter.seq += 1
    db.flush()
    return f"{counter.seq:03d}"


# PUBLIC_INTERFACE
def register_person(
    db: Session,
    person_type: str,
    full_name: str,
    inmate_id: Optional[str] = None,
    visit_purpose: Optional[str] = None,
    now: Optional[datetime.datetime] = None,
) -> Person:
    """
    Create a visitor or guest with the next sequential id for its type.
    """
    person_type = normalize_person_type(person_type)
    if not full_name or not full_name.strip():
        raise ValidationError("Full name is required", field="full_name")

    person = Person(
        person_type=person_type,
        person_id=next_person_id(db, person_type),
        full_name=full_name.strip(),
        inmate_id=inmate_id,
        visit_purpose=visit_purpose,
    )
    if now is not None:
        person.created_at = now
    db.add(person)
    db.commit()
    db.refresh(person)
    logger.info("Registered %s %s (%s)", person_type, person.person_id, person.full_name)
    return person


# PUBLIC_INTERFACE
def get_person(db: Session, person_id: str, person_type: str, for_update: bool = False) -> Person:
    """
    Fetch a person or raise PersonNotFoundError.

    Args:
        for_update (bool): lock the row until the transaction ends.
    """
    person_type = normalize_person_type(person_type)
    query = db.query(Person).filter(
        Person.person_id == person_id,
        Person.person_type == person_type,
    )
    if for_update:
        query = query.with_for_update()
    person = query.one_or_none()
    if person is None:
        raise PersonNotFoundError(person_id, person_type)
    return person
