from datetime import date

from songbird.intros import IntroCatalog
from songbird.models import IntroReference

INTROS = [
    IntroReference(url="/static/intros/amelia.mp3", voice="Amelia"),
    IntroReference(url="https://audio.example/antoni.mp3", voice="Antoni"),
]


def test_same_day_same_intro():
    catalog = IntroCatalog(INTROS)

    assert catalog.for_day(date(2024, 5, 20)) == catalog.for_day(date(2024, 5, 20))
    assert catalog.for_day(date(2024, 5, 20)) != catalog.for_day(date(2024, 5, 21))


def test_relative_urls_are_made_absolute():
    catalog = IntroCatalog(INTROS, base_url="https://songbird.example/")

    urls = {catalog.for_day(date(2024, 5, day)).url for day in (20, 21)}

    assert urls == {"https://songbird.example/static/intros/amelia.mp3", "https://audio.example/antoni.mp3"}


def test_empty_catalog_has_no_intro():
    assert IntroCatalog([]).for_day(date(2024, 5, 20)) is None
