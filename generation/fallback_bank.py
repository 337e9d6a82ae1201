"""
Fallback Bank

Static, preloaded, always-valid questions partitioned by `category:difficulty`.
Lookup order: exact partition → any partition of the category → general:easy.
A category with no entries silently borrows the default partition.

Selection is seeded-random among entries that are still fresh for the caller;
when none are fresh any entry of the partition is returned.
"""

import logging
import random
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from generation.schemas import GenerationRequest, Question

log = logging.getLogger(__name__)

DEFAULT_PARTITION = "general:easy"


def _q(question, choices, correct_index, explanation, topic_key, **extra) -> Question:
    return Question(
        question=question,
        choices=choices,
        correct_index=correct_index,
        explanation=explanation,
        answer_text=choices[correct_index],
        topic_key=topic_key,
        **extra,
    )


# ─── Curated entries ───────────────────────────────────────────────────────────

BANK: Dict[str, List[Question]] = {
    "general:easy": [
        _q("Which gas do humans need to breathe to survive?",
           ["Nitrogen", "Oxygen", "Carbon dioxide", "Helium"], 1,
           "Air is ~21% oxygen, which our cells use to make energy.", "oxygen"),
        _q("Which ocean borders California?",
           ["Atlantic", "Arctic", "Indian", "Pacific"], 3,
           "California lies on the Pacific coast.", "Pacific Ocean"),
        _q("How many days are there in a leap year?",
           ["364", "365", "366", "367"], 2,
           "February gains a 29th day every leap year.", "leap year"),
    ],
    "general:medium": [
        _q("Which planet is known as the Red Planet?",
           ["Venus", "Mars", "Jupiter", "Mercury"], 1,
           "Iron oxide dust gives Mars its reddish colour.", "Mars"),
        _q("How many sides does a hexagon have?",
           ["Five", "Six", "Seven", "Eight"], 1,
           "'Hex' comes from the Greek word for six.", "hexagon"),
    ],
    "general:hard": [
        _q("Which element has the highest melting point of all metals?",
           ["Iron", "Platinum", "Tungsten", "Titanium"], 2,
           "Tungsten melts at about 3,422 °C.", "tungsten"),
        _q("In which year did the first person walk on the Moon?",
           ["1965", "1969", "1972", "1959"], 1,
           "Neil Armstrong stepped onto the Moon on 20 July 1969.", "Moon landing"),
    ],
    "dictionary:medium": [
        _q("What is the best synonym for 'succinct'?",
           ["Wordy", "Vague", "Brief", "Confusing"], 2,
           "'Succinct' means expressed clearly in few words.", "succinct",
           headword="succinct", mode="synonym"),
        _q("Which word is the closest synonym of \"candid\"?",
           ["Frank", "Secretive", "Timid", "Careless"], 0,
           "A candid remark is open and honest.", "candid",
           headword="candid", mode="synonym"),
        _q("What is the best definition of \"ephemeral\"?",
           ["Lasting a very short time", "Extremely heavy", "Deeply religious", "Full of colour"], 0,
           "Mayflies are a classic example of ephemeral life.", "ephemeral",
           headword="ephemeral", mode="definition"),
    ],
    "entertainment:medium": [
        _q("Who directed the film 'Jurassic Park' (1993)?",
           ["James Cameron", "Steven Spielberg", "Ridley Scott", "Peter Jackson"], 1,
           "Spielberg's blockbuster set new standards for CGI and animatronics.", "Jurassic Park"),
        _q("Which band released the album 'Abbey Road'?",
           ["The Rolling Stones", "The Beatles", "Queen", "The Who"], 1,
           "Abbey Road (1969) was named after the street of the band's studio.", "Abbey Road"),
    ],
    "history:medium": [
        _q("The Magna Carta was signed in which year?",
           ["1066", "1215", "1492", "1776"], 1,
           "Signed in 1215, it limited the English king's power.", "Magna Carta"),
        _q("Who was the first President of the United States?",
           ["Thomas Jefferson", "John Adams", "George Washington", "Abraham Lincoln"], 2,
           "Washington served two terms from 1789 to 1797.", "George Washington"),
    ],
    "food_drink:medium": [
        _q("What gives traditional pesto its green color?",
           ["Parsley", "Basil", "Spinach", "Cilantro"], 1,
           "Classic Genovese pesto uses fresh basil leaves.", "pesto"),
        _q("Which country is the origin of the dish paella?",
           ["Italy", "Mexico", "Spain", "Portugal"], 2,
           "Paella comes from the Valencia region of Spain.", "paella"),
    ],
    "geography:medium": [
        _q("Which river flows through Cairo?",
           ["Tigris", "Danube", "Nile", "Euphrates"], 2,
           "Cairo sits on the banks of the Nile in Egypt.", "Nile"),
        _q("What is the capital city of Australia?",
           ["Sydney", "Melbourne", "Canberra", "Perth"], 2,
           "Canberra was purpose-built as a compromise capital.", "Canberra"),
    ],
    "science_nature:medium": [
        _q("What is the chemical symbol for sodium?",
           ["S", "Na", "So", "Sn"], 1,
           "From Latin 'natrium', hence the symbol Na.", "sodium"),
        _q("What part of the plant conducts photosynthesis?",
           ["Roots", "Leaves", "Bark", "Flowers"], 1,
           "Chloroplasts in leaf cells capture sunlight.", "photosynthesis"),
    ],
}


class FallbackBank:
    def __init__(
        self,
        entries: Optional[Dict[str, List[Question]]] = None,
        default_partition: str = DEFAULT_PARTITION,
    ):
        self.entries = {k: list(v) for k, v in (entries if entries is not None else BANK).items() if v}
        if not self.entries:
            raise ValueError("fallback bank must not be empty")
        if default_partition not in self.entries:
            default_partition = next(iter(self.entries))
        self.default_partition = default_partition

    def partition(self, category: str, difficulty: str) -> Tuple[str, List[Question]]:
        key = f"{category}:{difficulty}"
        if key in self.entries:
            return key, self.entries[key]
        for other, questions in self.entries.items():
            if other.startswith(f"{category}:"):
                return other, questions
        return self.default_partition, self.entries[self.default_partition]

    async def select(
        self,
        req: GenerationRequest,
        is_fresh: Optional[Callable[[Question], Awaitable[bool]]] = None,
    ) -> Question:
        """Always returns a question; prefers ones that pass `is_fresh`."""
        key, questions = self.partition(req.category, req.difficulty)
        rng = random.Random(req.seed)

        fresh = questions
        if is_fresh is not None:
            fresh = [q for q in questions if await is_fresh(q)]
        if not fresh:
            log.info(f"[FALLBACK] every entry in {key} collides for {req.pool_key}, serving one anyway")
            fresh = questions

        return rng.choice(fresh)
