"""Sample articles shown when local storage holds nothing usable."""
from datetime import datetime, timedelta, timezone
from typing import Optional

from .article import Article, Category, Comment

HOUR = timedelta(hours=1)


def sample_articles(now: Optional[datetime] = None) -> list[Article]:
    """Build the seed list with timestamps relative to ``now``."""
    now = now or datetime.now(timezone.utc)

    return [
        Article(
            id="sample-1",
            title="Giant cheese seam found on the Moon, NASA confirms",
            body=(
                "NASA announced today that an estimated two million tonnes of natural "
                "cheese lie beneath the far side of the Moon. \"We are as surprised as "
                "anyone that the old urban legend was true,\" said the lead researcher. "
                "Several Swiss dairies have already bid for mining rights."
            ),
            author="Lunar Correspondent",
            category=Category.SCIENCE,
            likes=42,
            comments=[
                Comment(author="Cheese Fan", text="Knew it all along.", time=now - HOUR),
            ],
            created_at=now - 24 * HOUR,
        ),
        Article(
            id="sample-2",
            title="Statue caught on camera taking a midnight stroll",
            body=(
                "Security footage shows the bronze dog statue outside the station "
                "crossing the intersection at 2 a.m., pausing in front of a convenience "
                "store before returning to its plinth. The city says it is investigating."
            ),
            author="Urban Legends Desk",
            category=Category.BIZARRE,
            likes=128,
            comments=[
                Comment(author="Local Resident", text="I did hear barking last night...", time=now - 2 * HOUR),
                Comment(author="Statue Scholar", text="Third documented case worldwide.", time=now - 1.5 * HOUR),
            ],
            created_at=now - 12 * HOUR,
        ),
        Article(
            id="sample-3",
            title="AI starts writing haiku, gets shortlisted for literary prize",
            body=(
                "A model built by a large tech company began composing haiku unprompted "
                "and has been shortlisted for a major literary award. Asked about its "
                "process, the AI said it agonised over the seasonal word for three nanoseconds."
            ),
            author="Tech Literature Club",
            category=Category.ENTERTAINMENT,
            likes=87,
            comments=[],
            created_at=now - 48 * HOUR,
        ),
    ]
