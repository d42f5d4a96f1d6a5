"""Seed a development database with users, profiles, connections and dismissals.

Rows are bulk-inserted directly (the connection state machine is bypassed),
so the seeded graph may contain any mix of statuses.  The RNG is seeded, so
the same arguments always produce the same data.

Usage: python -m scripts.seed_fixtures [--count 300] [--seed 42] [--truncate]
"""
import argparse
import asyncio
import random
import secrets
import sys
from typing import Any

from sqlalchemy import delete, insert, text

from tandem.database import async_session_factory
from tandem.models.connection import Connection, ConnectionStatus
from tandem.models.dismissal import DismissedRecommendation
from tandem.models.profile import Profile
from tandem.models.user import User


DEFAULT_COUNT = 300
DEFAULT_SEED = 42

CITIES = [
    ("Helsinki", 60.1699, 24.9384),
    ("Espoo", 60.2055, 24.6559),
    ("Tampere", 61.4978, 23.7610),
    ("Turku", 60.4518, 22.2666),
    ("Oulu", 65.0121, 25.4651),
]

FIRST_NAMES = ["Alex", "Sam", "Mia", "Lauri", "Noah", "Olivia", "Leo", "Emil", "Sara", "Luca",
               "Milla", "Mikko", "Eeva", "Niklas", "Sofia"]
LAST_NAMES = ["Korhonen", "Virtanen", "Nieminen", "Laine", "Heikkinen", "Koski", "Mäki", "Aho",
              "Salmi", "Rantanen"]

HOBBIES = ["hiking", "photography", "cooking", "reading", "boardgames", "gym", "yoga",
           "tennis", "climbing", "knitting", "guitar", "painting"]
DIGITAL = ["videogames", "retro gaming", "web dev", "3d art", "music production",
           "photo editing", "programming", "robotics"]
FOODS = ["italian", "japanese", "thai", "indian", "vegan", "french", "korean", "greek", "burgers"]
MUSICS = ["rock", "metal", "jazz", "blues", "techno", "house", "ambient", "pop", "folk"]

ABOUTS = [
    "Curious mind, coffee lover.",
    "Weekend hiker and weekday coder.",
    "Always learning new things.",
    "Talk to me about music and tech.",
    "Into analog photography and ramen.",
]
COLLAB_HEADS = ["Looking to", "Would love to", "Open to", "Interested in"]
COLLAB_TAILS = [
    " build things together in a workshop.",
    " jam with a band.",
    " teach a beginner some code.",
    " start a collaborative d&d campaign.",
    " find a mentor for design work.",
]


def _validate_rate(name: str, value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise argparse.ArgumentTypeError(f"{name} must be in range 0..1, got {value}")
    return value


def random_profile(rng: random.Random, user_id: int) -> dict[str, Any]:
    """Generate a complete profile row for ``user_id``."""
    city, lat, lon = rng.choice(CITIES)
    return {
        "user_id": user_id,
        "display_name": f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}",
        "about_me": rng.choice(ABOUTS),
        "location_city": city,
        "location_lat": lat + (rng.random() - 0.5) * 0.2,
        "location_lon": lon + (rng.random() - 0.5) * 0.2,
        "max_radius_km": 10 + rng.randrange(40),
        "analog_passions": sorted(set(rng.sample(HOBBIES, 2))),
        "digital_delights": sorted(set(rng.sample(DIGITAL, 2))),
        "collaboration_interests": rng.choice(COLLAB_HEADS) + rng.choice(COLLAB_TAILS),
        "favorite_food": rng.choice(FOODS),
        "favorite_music": rng.choice(MUSICS),
        "match_preferences": {
            "analog_passions": 1 + rng.randrange(5),
            "digital_delights": 1 + rng.randrange(5),
            "collaboration_interests": 1 + rng.randrange(5),
            "favorite_food": 1 + rng.randrange(3),
            "favorite_music": 1 + rng.randrange(3),
            "location": 3 + rng.randrange(3),
        },
        "is_complete": True,
    }


def random_connections(
    rng: random.Random,
    user_ids: list[int],
    connect_rate: float,
    pending_rate: float,
    disconnected_rate: float,
) -> list[dict[str, Any]]:
    """Build a random connection graph with at most one row per unordered pair."""
    total_rate = connect_rate + pending_rate + disconnected_rate
    if total_rate == 0 or len(user_ids) < 2:
        return []

    max_pairs = len(user_ids) * (len(user_ids) - 1) // 2
    target = min(max(int(len(user_ids) * total_rate * 1.2), len(user_ids)), max_pairs)

    seen: set[tuple[int, int]] = set()
    rows: list[dict[str, Any]] = []
    while len(rows) < target:
        a, b = rng.sample(user_ids, 2)
        key = (min(a, b), max(a, b))
        if key in seen:
            continue
        seen.add(key)

        p = rng.random() * total_rate
        if p < connect_rate:
            status = ConnectionStatus.ACCEPTED
        elif p < connect_rate + pending_rate:
            status = ConnectionStatus.PENDING
        else:
            status = ConnectionStatus.DISCONNECTED

        # direction only matters for pending rows
        if status is not ConnectionStatus.PENDING and rng.random() < 0.5:
            a, b = b, a
        rows.append({"requester_id": a, "target_id": b, "status": status})
    return rows


def random_dismissals(
    rng: random.Random,
    user_ids: list[int],
    rate: float,
) -> list[dict[str, Any]]:
    if rate <= 0 or len(user_ids) < 2:
        return []
    rows: set[tuple[int, int]] = set()
    for uid in user_ids:
        if rng.random() >= rate:
            continue
        other = rng.choice(user_ids)
        if other != uid:
            rows.add((uid, other))
    return [{"user_id": u, "dismissed_user_id": d} for u, d in sorted(rows)]


async def truncate_all(session) -> None:
    if session.get_bind().dialect.name == "postgresql":
        await session.execute(text(
            "TRUNCATE dismissed_recommendations, connections, profiles, users "
            "RESTART IDENTITY CASCADE"
        ))
        return
    for model in (DismissedRecommendation, Connection, Profile, User):
        await session.execute(delete(model))


async def seed(args: argparse.Namespace) -> dict[str, int]:
    rng = random.Random(args.seed)
    counts = {"users": 0, "profiles": 0, "connections": 0, "dismissals": 0}

    async with async_session_factory() as session:
        async with session.begin():
            if args.truncate:
                await truncate_all(session)
                print("  Truncated users, profiles, connections, dismissed_recommendations.")

            user_rows = [
                {
                    "email": f"user{i:05d}.{args.seed}@example.com",
                    # login disabled until the auth service sets a real hash
                    "password_hash": "!" + secrets.token_hex(29),
                }
                for i in range(args.count)
            ]
            result = await session.execute(
                insert(User).returning(User.id), user_rows
            )
            user_ids = sorted(result.scalars().all())
            counts["users"] = len(user_ids)
            print(f"  Inserted {len(user_ids)} users")

            profile_rows = [random_profile(rng, uid) for uid in user_ids]
            await session.execute(insert(Profile), profile_rows)
            counts["profiles"] = len(profile_rows)
            print(f"  Inserted {len(profile_rows)} profiles")

            connection_rows: list[dict[str, Any]] = []
            if len(user_ids) >= 2:
                # the first two users are a known connected pair for manual testing
                connection_rows.append({
                    "requester_id": user_ids[0],
                    "target_id": user_ids[1],
                    "status": ConnectionStatus.ACCEPTED,
                })
            connection_rows.extend(random_connections(
                rng, user_ids[2:], args.connect_rate, args.pending_rate, args.disconnected_rate,
            ))
            if connection_rows:
                await session.execute(insert(Connection), connection_rows)
            counts["connections"] = len(connection_rows)
            print(f"  Inserted {len(connection_rows)} connections")

            dismissal_rows = random_dismissals(rng, user_ids, args.dismiss_rate)
            if dismissal_rows:
                await session.execute(insert(DismissedRecommendation), dismissal_rows)
            counts["dismissals"] = len(dismissal_rows)
            print(f"  Inserted {len(dismissal_rows)} dismissed_recommendations")

    print("Done seeding fixtures.")
    return counts


def main():
    parser = argparse.ArgumentParser(description="Tandem fixture seeder")
    parser.add_argument("--count", type=int, default=DEFAULT_COUNT, help="Number of users to create")
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="RNG seed (deterministic)")
    parser.add_argument("--truncate", action="store_true", help="Empty the tables before seeding")
    parser.add_argument("--connect-rate", type=float, default=0.60, help="Share of accepted connections (0..1)")
    parser.add_argument("--pending-rate", type=float, default=0.10, help="Share of pending connections (0..1)")
    parser.add_argument("--disconnected-rate", type=float, default=0.05, help="Share of disconnected connections (0..1)")
    parser.add_argument("--dismiss-rate", type=float, default=0.20, help="Share of users with a dismissal (0..1)")
    args = parser.parse_args()

    if args.count < 1:
        parser.error("--count must be at least 1")
    try:
        for name in ("connect_rate", "pending_rate", "disconnected_rate", "dismiss_rate"):
            _validate_rate(f"--{name.replace('_', '-')}", getattr(args, name))
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))

    counts = asyncio.run(seed(args))
    if counts["users"] != args.count:
        print(f"FAIL: expected {args.count} users, inserted {counts['users']}")
        sys.exit(1)


if __name__ == "__main__":
    main()
