# dalat_notifications/footers.py
"""Short editorial lines, one of which closes every outgoing email."""

import random
from typing import Optional, Sequence

INSPIRING_FOOTERS = (
    # Đà Lạt
    "Where the pines whisper and friendships bloom 🌲",
    "Life is better at 1,500 meters above sea level",
    "The City of Eternal Spring welcomes you",
    "Where every sunset paints a masterpiece",
    "Mist, mountains, and meaningful moments",
    "The best conversations happen over cà phê sữa đá",
    "Where cool weather meets warm hearts",
    "Pine forests don't judge, they just listen",
    "Where flowers bloom and so do friendships",
    "Even the weather says it's perfect for going out",
    "Đà Lạt nights are made for adventures",
    "The pine trees approve of your decision to attend",
    "Artichoke tea optional, fun mandatory",
    "Coffee tastes better at high altitude. Fact.",
    "The mist adds mystery. You add the magic.",
    "Wear layers, make memories",
    # Connection
    "Humans are wired for connection. Science says so.",
    "Every great story starts with 'remember that time we...'",
    "Life's too short for boring weekends",
    "Your future favorite memory is waiting to happen",
    "Adventures are better when shared",
    "Strangers are just friends you haven't met yet",
    "Community isn't a place, it's a feeling",
    "Find your tribe, love them hard",
    "Solo is fine. Together is magic.",
    "Your people are out there. Go find them.",
    "Building memories, one event at a time",
    # Playful
    "Your couch will still be there. This moment won't.",
    "Plot twist: you actually have fun",
    "Warning: may cause spontaneous happiness",
    "Side effects include: new friends, good memories",
    "Your calendar was feeling lonely anyway",
    "Memories loading... please attend",
    "This is your sign to go",
    "RSVPs: turning maybes into memories since forever",
    # Warm
    "Sending this with good vibes attached",
    "Hope to see your smile there",
    "Your presence makes a difference",
    "Until we meet, take care of yourself",
)


def pick_footer(footers: Sequence[str], rng: Optional[random.Random] = None) -> Optional[str]:
    """Random footer line, or None when there are no lines to choose from."""
    if not footers:
        return None
    return (rng or random).choice(list(footers))
