"""Schema descriptors for the persisted resources: users, tours, reviews, bookings."""

from api.src.models.auth import Role
from api.src.models.schema import (
    BOOLEAN,
    DATE,
    EMAIL_PATTERN,
    INTEGER,
    NUMBER,
    OBJECT,
    OBJECT_ID,
    STRING,
    EntitySchema,
    FieldSpec,
    utc_now,
)


def _passwords_match(value, doc) -> bool:
    return value == doc.get("password")


def _discount_below_price(value, doc) -> bool:
    price = doc.get("price")
    return price is None or value < price


USER_SCHEMA = EntitySchema(
    name="User",
    collection="users",
    fields={
        "name": FieldSpec(STRING, required="Please tell us your name!", trim=True),
        "email": FieldSpec(
            STRING,
            required="Please provide your email",
            unique=True,
            lowercase=True,
            trim=True,
            validator=lambda value, doc: bool(EMAIL_PATTERN.match(value)),
            messages={"validator": "Please provide a valid email"},
        ),
        "photo": FieldSpec(STRING, default="default.jpg"),
        "role": FieldSpec(STRING, enum=tuple(r.value for r in Role), default=Role.USER.value),
        "password": FieldSpec(
            STRING,
            required="Please provide a password",
            min_length=8,
            hidden=True,
            immutable=True,
        ),
        "passwordConfirm": FieldSpec(
            STRING,
            required="Please confirm your password",
            transient=True,
            immutable=True,
            validator=_passwords_match,
            messages={"validator": "Passwords are not the same!"},
        ),
        "passwordChangedAt": FieldSpec(DATE, hidden=True, immutable=True),
        "passwordResetToken": FieldSpec(STRING, hidden=True, immutable=True),
        "passwordResetExpires": FieldSpec(DATE, hidden=True, immutable=True),
        "active": FieldSpec(BOOLEAN, default=True, hidden=True),
        "createdAt": FieldSpec(DATE, default=utc_now),
    },
)


TOUR_SCHEMA = EntitySchema(
    name="Tour",
    collection="tours",
    fields={
        "name": FieldSpec(
            STRING,
            required="A tour must have a name",
            unique=True,
            trim=True,
            min_length=10,
            max_length=40,
            messages={
                "min_length": "A tour name must have more or equal then 10 characters",
                "max_length": "A tour name must have less or equal then 40 characters",
            },
        ),
        "slug": FieldSpec(STRING),
        "duration": FieldSpec(NUMBER, required="A tour must have a duration"),
        "maxGroupSize": FieldSpec(INTEGER, required="A tour must have a group size"),
        "difficulty": FieldSpec(
            STRING,
            required="A tour must have a difficulty",
            enum=("easy", "medium", "difficult"),
            messages={"enum": "Difficulty is either: easy, medium, difficult"},
        ),
        "ratingsAverage": FieldSpec(
            NUMBER,
            default=4.5,
            min_value=1,
            max_value=5,
            messages={
                "min": "Rating must be above 1.0",
                "max": "Rating must be below 5.0",
            },
        ),
        "ratingsQuantity": FieldSpec(INTEGER, default=0),
        "price": FieldSpec(NUMBER, required="A tour must have a price"),
        "priceDiscount": FieldSpec(
            NUMBER,
            validator=_discount_below_price,
            messages={"validator": "Discount price should be below regular price"},
        ),
        "summary": FieldSpec(STRING, required="A tour must have a description", trim=True),
        "description": FieldSpec(STRING, trim=True),
        "imageCover": FieldSpec(STRING, required="A tour must have a cover image"),
        "images": FieldSpec(STRING, many=True),
        "startDates": FieldSpec(DATE, many=True),
        "secretTour": FieldSpec(BOOLEAN, default=False),
        "startLocation": FieldSpec(OBJECT),
        "locations": FieldSpec(OBJECT, many=True),
        "guides": FieldSpec(OBJECT_ID, many=True, ref="users"),
        "createdAt": FieldSpec(DATE, default=utc_now, hidden=True),
    },
)


REVIEW_SCHEMA = EntitySchema(
    name="Review",
    collection="reviews",
    fields={
        "review": FieldSpec(STRING, required="A review is required"),
        "rating": FieldSpec(NUMBER, required=True, min_value=1, max_value=5),
        "createdAt": FieldSpec(DATE, default=utc_now),
        "tour": FieldSpec(OBJECT_ID, required="Review must belong to a tour", ref="tours", immutable=True),
        "user": FieldSpec(OBJECT_ID, required="Review must belong to a user", ref="users", immutable=True),
    },
    unique_together=(("tour", "user"),),
)


BOOKING_SCHEMA = EntitySchema(
    name="Booking",
    collection="bookings",
    fields={
        "tour": FieldSpec(OBJECT_ID, required="Booking must belong to a Tour!", ref="tours"),
        "user": FieldSpec(OBJECT_ID, required="Booking must belong to a User!", ref="users"),
        "price": FieldSpec(NUMBER, required="Booking must have a price."),
        "createdAt": FieldSpec(DATE, default=utc_now),
        "paid": FieldSpec(BOOLEAN, default=True),
    },
)


ALL_SCHEMAS = (USER_SCHEMA, TOUR_SCHEMA, REVIEW_SCHEMA, BOOKING_SCHEMA)
