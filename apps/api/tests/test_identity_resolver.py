import pytest

from kidwallet_api.models.child import ChildProfile
from kidwallet_api.services.ledger.identities import IdentityResolver, normalize_subject_key


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("child-1", "child-1"),
        ("  child-1  ", "child-1"),
        ('"child-1"', "child-1"),
        ("'child-1'", "child-1"),
        ('{"child_uid": "legacy-1"}', "legacy-1"),
        ('{"childId": "child-9"}', "child-9"),
        ('{"uid": " u-2 "}', "u-2"),
        ('{"name": "Ava"}', None),
        ("{not json}", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_subject_key(raw, expected) -> None:
    assert normalize_subject_key(raw) == expected


@pytest.mark.asyncio
async def test_resolve_known_child_returns_both_ids(session_factory) -> None:
    async with session_factory() as session:
        session.add(ChildProfile(id="child-1", child_uid="legacy-1", family_id="fam-1"))
        await session.commit()

        resolver = IdentityResolver(session)
        by_legacy = await resolver.resolve("legacy-1")
        by_canonical = await resolver.resolve('"child-1"')
        canonical = await resolver.canonical_id("legacy-1")

    assert by_legacy == ["legacy-1", "child-1"]
    assert by_canonical == ["child-1", "legacy-1"]
    assert canonical == "child-1"


@pytest.mark.asyncio
async def test_resolve_unknown_seed_returns_seed(session_factory) -> None:
    async with session_factory() as session:
        resolver = IdentityResolver(session)
        assert await resolver.resolve("stranger") == ["stranger"]
        assert await resolver.canonical_id("stranger") == "stranger"


@pytest.mark.asyncio
async def test_resolve_unusable_seed_returns_empty(session_factory) -> None:
    async with session_factory() as session:
        resolver = IdentityResolver(session)
        assert await resolver.resolve('{"name": "Ava"}') == []
        assert await resolver.canonical_id("   ") is None


@pytest.mark.asyncio
async def test_family_profiles_lists_children(session_factory) -> None:
    async with session_factory() as session:
        session.add_all(
            [
                ChildProfile(id="child-1", family_id="fam-1", nick_name="Ava"),
                ChildProfile(id="child-2", family_id="fam-1", first_name="Leo"),
                ChildProfile(id="child-3", family_id="fam-2"),
            ]
        )
        await session.commit()

        profiles = await IdentityResolver(session).family_profiles("fam-1")

    assert {profile.id for profile in profiles} == {"child-1", "child-2"}
    assert {profile.display_name for profile in profiles} == {"Ava", "Leo"}
