#!/usr/bin/env python3
"""
Seed data script for development and testing

Everything goes through the domain services, so counters, cached feeds and
notification events end up exactly as real traffic would leave them.
"""
import asyncio
import sys
from pathlib import Path
import random

# Add the project root to the Python path
current_dir = Path(__file__).parent
root_dir = current_dir.parent
sys.path.insert(0, str(root_dir))

FIRST_NAMES = ["john", "jane", "bob", "alice", "charlie", "diana", "eve", "frank", "grace", "henry"]
PROFESSIONS = ["Developer", "Designer", "Manager", "Engineer", "Artist", "Writer", "Consultant", "Analyst"]
POST_TEXTS = [
    "Just had the best coffee ever #coffee",
    "Working on an exciting new project #buildinpublic",
    "Beautiful sunset today #photography",
    "Learning new technologies is always fun #python",
    "Weekend vibes #weekend",
    "Just finished reading an amazing book #books",
    "Morning workout complete #fitness",
    "Great meeting with the team today",
]
SEED_PASSWORD = "Password123"

async def seed_users(services, count: int = 10) -> list:
    """Seed users"""
    from nowcast.schemas.auth_schema import RegisterRequest
    from nowcast.services.auth_service import AuthService
    from nowcast.utils.errors import ConflictError

    print(f"👥 Seeding {count} users...")

    users = []
    async with services.session_factory() as db:
        auth_service = AuthService(db, services.settings)

        for i in range(count):
            name = random.choice(FIRST_NAMES)
            try:
                user = await auth_service.create_user(RegisterRequest(
                    username=f"{name}_{i}",
                    email=f"{name}{i}@example.com",
                    password=SEED_PASSWORD,
                    bio=f"{random.choice(PROFESSIONS)} with {random.randint(1, 20)} years of experience"
                ))
                users.append(user)
            except ConflictError:
                print(f"⚠️  User {name}_{i} already exists, skipping")

    print(f"✅ Created {len(users)} users")
    return users

async def seed_follows(services, users: list) -> None:
    """Seed follow relationships"""
    from nowcast.services.interaction_service import InteractionService

    print("🔗 Seeding follow relationships...")

    follow_count = 0
    async with services.session_factory() as db:
        interactions = InteractionService(db, services.cache, services.relay)

        for user in users:
            others = [u for u in users if u.id != user.id]
            for followed in random.sample(others, random.randint(0, len(others) // 2)):
                await interactions.follow_user(user, followed.id)
                follow_count += 1

    print(f"✅ Created {follow_count} follow relationships")

async def seed_posts(services, users: list, count_per_user: int = 5) -> list:
    """Seed posts, with some replies and mentions mixed in"""
    from nowcast.schemas.post_schema import PostCreate
    from nowcast.services.post_service import PostService

    print(f"📝 Seeding posts ({count_per_user} per user)...")

    posts = []
    async with services.session_factory() as db:
        post_service = PostService(db, services.cache, services.relay, services.settings)

        for _ in range(count_per_user):
            for user in users:
                text = random.choice(POST_TEXTS)
                parent_id = None
                if posts and random.random() > 0.7:
                    parent_id = random.choice(posts).id
                    text = f"@{random.choice(users).username} {text}"

                post = await post_service.create_post(user, PostCreate(text=text, parent_id=parent_id))
                posts.append(post)

    print(f"✅ Created {len(posts)} posts")
    return posts

async def seed_likes(services, users: list, posts: list) -> None:
    """Seed likes and reposts"""
    from nowcast.services.interaction_service import InteractionService

    print("❤️  Seeding likes and reposts...")

    like_count = 0
    repost_count = 0
    async with services.session_factory() as db:
        interactions = InteractionService(db, services.cache, services.relay)

        for post in posts:
            for liker in random.sample(users, random.randint(0, len(users) // 2)):
                await interactions.like_post(liker, post.id)
                like_count += 1
            if random.random() > 0.8:
                await interactions.repost(random.choice(users), post.id)
                repost_count += 1

    print(f"✅ Created {like_count} likes and {repost_count} reposts")

async def run_with_services(work) -> None:
    """Open the database and Redis for one seeding run"""
    from nowcast.config import settings
    from nowcast.db.session import init_db
    from nowcast.services.container import AppServices

    services = AppServices.from_settings(settings)
    try:
        await init_db(services.engine)
        await work(services)
    finally:
        await services.close()

async def seed_all(services) -> None:
    """Seed all data"""
    print("🌱 Starting database seeding...")

    users = await seed_users(services, 20)
    await seed_follows(services, users)
    posts = await seed_posts(services, users, 3)
    await seed_likes(services, users, posts)

    print("🎉 Database seeding completed!")

async def seed_test_data(services) -> None:
    """Seed minimal data for testing"""
    print("🧪 Seeding test data...")

    users = await seed_users(services, 3)
    await seed_follows(services, users)
    await seed_posts(services, users, 1)

    print("✅ Test data seeded")

async def clear_all_data(services) -> None:
    """Clear all rows and every cached feed, snapshot and trending list"""
    from nowcast.models import Base
    from nowcast.services.cache_service import CacheNamespace

    print("🧹 Clearing all data...")

    async with services.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())
            print(f"  Cleared {table.name}")

    for namespace in (CacheNamespace.FEED, CacheNamespace.USER, CacheNamespace.POST, CacheNamespace.TRENDING):
        keys = [key async for key in services.redis.scan_iter(match=f"{namespace.value}:*", count=500)]
        if keys:
            await services.redis.delete(*keys)
        print(f"  Cleared {len(keys)} {namespace.value} keys")

    print("✅ All data cleared")

def confirm_required(args) -> bool:
    if not args.confirm:
        print("⚠️  WARNING: This will delete ALL data from the database!")
        print("   Use --confirm flag to proceed")
        return True
    return False

def main() -> None:
    """Main entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="Database Seeding")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Seed all command
    subparsers.add_parser("all", help="Seed all data")

    # Seed users command
    users_parser = subparsers.add_parser("users", help="Seed users only")
    users_parser.add_argument("--count", type=int, default=10, help="Number of users")

    # Seed test command
    subparsers.add_parser("test", help="Seed test data")

    # Clear command
    clear_parser = subparsers.add_parser("clear", help="Clear all data")
    clear_parser.add_argument("--confirm", action="store_true", help="Confirm clear")

    # Reset command
    reset_parser = subparsers.add_parser("reset", help="Clear and reseed")
    reset_parser.add_argument("--confirm", action="store_true", help="Confirm reset")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    async def reset(services):
        await clear_all_data(services)
        await seed_all(services)

    try:
        if args.command == "all":
            asyncio.run(run_with_services(seed_all))

        elif args.command == "users":
            asyncio.run(run_with_services(lambda services: seed_users(services, args.count)))

        elif args.command == "test":
            asyncio.run(run_with_services(seed_test_data))

        elif args.command == "clear":
            if confirm_required(args):
                return
            asyncio.run(run_with_services(clear_all_data))

        elif args.command == "reset":
            if confirm_required(args):
                return
            asyncio.run(run_with_services(reset))

    except KeyboardInterrupt:
        print("\n⚠️  Operation cancelled by user")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
