"""Database seeder for local development and manual feed testing."""
import asyncio
import argparse
import random
import time

from conduit.database import engine, async_session, Base
from conduit.schemas import ArticleCreate, UserCreate
from conduit.services import article_service, favorite_service, follow_service, user_service

TAGS = ["python", "fastapi", "postgresql", "docker", "kubernetes",
        "react", "typescript", "aws", "devops", "testing", "performance",
        "security", "dragons", "training"]


async def seed(small: bool = False):
    num_users = 10 if small else 50
    num_articles = 100 if small else 2000

    print(f"Seeding: {num_users} users, {num_articles} articles")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        users = []
        for i in range(num_users):
            user = await user_service.create_user(
                session,
                UserCreate(
                    username=f"user_{i:04d}",
                    email=f"user_{i:04d}@example.com",
                    password="password",
                ),
            )
            users.append(user)
        print(f"  Created {len(users)} users")

        follows = 0
        for user in users:
            for followee in random.sample(users, k=min(5, len(users))):
                await follow_service.follow(session, user, followee)
                follows += 1
        print(f"  Created ~{follows} follow edges")

        articles = []
        for i in range(num_articles):
            topic = random.choice(TAGS)
            article = await article_service.create_article(
                session,
                random.choice(users),
                ArticleCreate(
                    title=f"Article {i}: How to train your {topic} stack",
                    description=f"A guide to {topic} in production.",
                    body=f"This is the full content of article {i}. " * 20,
                ),
            )
            await article_service.attach_tags(session, article, random.sample(TAGS, k=random.randint(1, 4)))
            articles.append(article)
            if (i + 1) % 500 == 0:
                print(f"  {i + 1} articles created")

        favorites = 0
        for user in users:
            for article in random.sample(articles, k=min(10, len(articles))):
                await favorite_service.favorite(session, user, article)
                favorites += 1
        print(f"  Created {favorites} favorites")

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users}")
    print(f"  Articles: {num_articles}")
    print(f"  Tags: {len(TAGS)}")


def main():
    parser = argparse.ArgumentParser(description="Seed the Conduit database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 articles)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
