import argparse
import random
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app import models  # noqa: F401
from app.config import GROUP_SIZES, MAX_PAGE_SIZE
from app.database import Base, engine
from app.services import candidates, decisions, formation
from app.services.event_bus import EventBus

FIRST_NAMES = ["Ava", "Ben", "Cleo", "Dev", "Eli", "Fern", "Gus", "Hana", "Ivo", "Jules", "Kai", "Lena", "Milo", "Nia"]
GROUP_NAMES = ["Brunch Crew", "Trivia Squad", "Board Gamers", "Trail Runners", "Karaoke Club", "Night Owls"]
GENDER_PAIRS = [("man", "woman"), ("woman", "man"), (None, None)]


def seed_groups(n_groups: int, size: int, rng: random.Random, like_ratio: float) -> dict[str, int]:
    bus = EventBus()
    groups = []
    for i in range(n_groups):
        members = [
            formation.create_member(f"{rng.choice(FIRST_NAMES)} {i}-{j}", avatar_url=f"https://i.pravatar.cc/150?u={i}-{j}")
            for j in range(size)
        ]
        group_gender, preferred_gender = rng.choice(GENDER_PAIRS)
        groups.append(
            formation.create_group(
                bus,
                members[0]["id"],
                f"{rng.choice(GROUP_NAMES)} #{i + 1}",
                size,
                member_ids=[m["id"] for m in members[1:]],
                group_gender=group_gender,
                preferred_gender=preferred_gender,
            )
        )

    likes = 0
    matches = 0
    for group in groups:
        for other in candidates.fetch_candidates(group["id"], page_size=MAX_PAGE_SIZE).candidates:
            if rng.random() >= like_ratio:
                continue
            result = decisions.like(bus, group["id"], other["id"])
            likes += 1
            matches += int(result.matched and result.match_id is not None)
    return {"groups": len(groups), "members": len(groups) * size, "likes": likes, "matched_likes": matches}


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed demo Bubble Match groups")
    parser.add_argument("--n-groups", type=int, default=12)
    parser.add_argument("--size", type=int, default=2, choices=GROUP_SIZES)
    parser.add_argument("--like-ratio", type=float, default=0.2)
    parser.add_argument("--reset", action="store_true")
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    if args.reset:
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    summary = seed_groups(args.n_groups, args.size, random.Random(args.seed), args.like_ratio)

    print("Seed completed")
    for k, v in summary.items():
        print(f"- {k}: {v}")


if __name__ == "__main__":
    main()
