"""Create demo modules and sessions for development/testing."""

from fizzrix.models import AppendixEntry, Episode, ModuleData, TextSection
from fizzrix.storage import Repository, new_id

DEMO_MODULE = {
    "name": "Dragon's Hollow",
    "category": "one-shot",
    "introduction": "Deep in the mountain pass lies a village terrorized by a young dragon. "
    "The townsfolk need a hero, but things are not as simple as they seem.",
    "overview": "Three episodes: arrival in the village, the climb to the lair, "
    "and the bargain with the dragon.",
    "episodes": [
        ("Arrival", "Smoke curls from a handful of chimneys; half the village lies in ruins."),
        ("The Climb", "A narrow goat path winds up to the scorched cave mouth."),
        ("The Bargain", "The dragon is young, hungry, and willing to talk."),
    ],
    "monsters": [
        ("Young Red Dragon", "AC 18, HP 178. Fire breath 16d6."),
        ("Kobold Scout", "AC 12, HP 5. Pack tactics."),
    ],
    "magic_items": [
        ("Dragonscale Cloak", "Resistance to fire damage while worn."),
    ],
}


def create_demo_data(repo: Repository) -> None:
    """Wipe existing modules/sessions and create one fresh demo module."""
    for module in repo.modules.list():
        repo.remove_module(module.id)
    repo.sessions.replace_all([])

    demo = DEMO_MODULE
    module = repo.modules.add(demo["name"], demo["category"])

    def fill(_: ModuleData) -> ModuleData:
        data = ModuleData(
            introduction=TextSection(text=demo["introduction"]),
            overview=TextSection(text=demo["overview"]),
        )
        data.episodes = [Episode(id=new_id(), title=t, content=c) for t, c in demo["episodes"]]
        data.appendices.monsters = [
            AppendixEntry(id=new_id(), name=n, content=c) for n, c in demo["monsters"]
        ]
        data.appendices.magic_items = [
            AppendixEntry(id=new_id(), name=n, content=c) for n, c in demo["magic_items"]
        ]
        return data

    module = repo.modules.update_data(module.id, fill)

    # One laid-out session so the dashboard is populated out of the box
    session = repo.sessions.ensure_default_for_module(module.id)[0]
    repo.sessions.add_card(session.id, "intro")
    for ep in module.data.episodes[:2]:
        repo.sessions.add_card(session.id, "episode", ep.id)
    repo.sessions.add_card(session.id, "monster", module.data.appendices.monsters[0].id)
    repo.sessions.create(module.id, "Session 2")
