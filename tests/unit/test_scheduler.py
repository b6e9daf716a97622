"""Tests for the click-driven exploration scheduler."""

import pytest
from conftest import BASE_URL, FakeControl, FakeSite, FakeSurface, FakeView, make_config

from spasnap.crawler.models import (
    ActionKind,
    ErrorKind,
    Fingerprint,
    InsertOutcome,
    NavigationAction,
    TransitionKind,
)
from spasnap.crawler.scheduler import ExplorationScheduler, ExplorationState, classify_transition


async def explore(site: FakeSite, surface: FakeSurface | None = None, **config):
    surface = surface or FakeSurface(site)
    scheduler = ExplorationScheduler(make_config(**config), surface)
    result = await scheduler.run()
    return scheduler, surface, result


def component_site() -> FakeSite:
    """Landing view with two top-level controls; Components holds a nested card."""
    return FakeSite(
        views={
            "home": FakeView(
                "Home",
                ["Design System"],
                controls=[
                    FakeControl("Components", "components"),
                    FakeControl("Colors", "colors"),
                ],
            ),
            "components": FakeView(
                "Home",
                ["Components"],
                controls=[
                    FakeControl(
                        "Badge Small status indicators",
                        "badge",
                        tag="div",
                        card_like=True,
                        heading="Badge",
                    )
                ],
            ),
            "colors": FakeView("Home", ["Colors"]),
            "badge": FakeView("Home", ["Badge"], ["Small status indicators."]),
        },
        routes={"/": "home"},
    )


class TestClassifyTransition:
    def setup_method(self):
        self.a = Fingerprint(headings=("A",))
        self.b = Fingerprint(headings=("B",))

    def test_address_change_wins(self):
        result = classify_transition(BASE_URL, BASE_URL + "#/x", self.a, self.b)
        assert result == TransitionKind.ADDRESS_CHANGED

    def test_content_change(self):
        assert classify_transition(BASE_URL, BASE_URL, self.a, self.b) == (
            TransitionKind.CONTENT_CHANGED
        )

    def test_no_op(self):
        assert classify_transition(BASE_URL, BASE_URL, self.a, self.a) == TransitionKind.NO_OP

    def test_query_noise_is_not_navigation(self):
        result = classify_transition(BASE_URL, BASE_URL + "?utm=1", self.a, self.a)
        assert result == TransitionKind.NO_OP


class TestAddressExploration:
    @pytest.mark.asyncio
    async def test_fragment_routed_site(self, hash_site):
        scheduler, _, result = await explore(hash_site)

        assert [r.key for r in result.records] == ["/", "#/colors", "#/about"]
        assert result.rejections == []
        assert result.ok
        assert scheduler.state == ExplorationState.DONE

    @pytest.mark.asyncio
    async def test_landing_record(self, hash_site):
        _, _, result = await explore(hash_site)

        landing = result.records[0]
        assert landing.breadcrumb_label == "Overview"
        assert landing.transition == TransitionKind.SEED
        assert landing.depth == 0
        assert "https://site.example/#/colors" in landing.outbound_references

    @pytest.mark.asyncio
    async def test_child_records(self, hash_site):
        _, _, result = await explore(hash_site)

        colors = result.records[1]
        assert colors.breadcrumb_label == "Colors"
        assert colors.transition == TransitionKind.ADDRESS_CHANGED
        assert colors.origin_key == "/"
        assert colors.depth == 1
        assert colors.replay_labels == ()
        assert colors.body_markup.startswith("<h1>Colors</h1>")

    @pytest.mark.asyncio
    async def test_page_budget(self, hash_site):
        _, _, result = await explore(hash_site, max_pages=2)

        assert result.view_count == 2
        assert result.fatal_error is None

    @pytest.mark.asyncio
    async def test_excluded_routes_are_not_captured(self, hash_site):
        _, _, result = await explore(hash_site, exclude_patterns=["/about"])

        assert [r.key for r in result.records] == ["/", "#/colors"]

    @pytest.mark.asyncio
    async def test_seed_failure_is_fatal(self):
        site = FakeSite(views={"home": FakeView("Home", ["Home"])}, routes={"/elsewhere": "home"})

        _, _, result = await explore(site)

        assert result.records == []
        assert not result.ok
        assert "HTTP 404" in result.fatal_error
        assert result.errors[0].kind == ErrorKind.NAVIGATION_ERROR

    @pytest.mark.asyncio
    async def test_broken_link_is_recorded_and_skipped(self, hash_site):
        hash_site.views["home"].links.append(("#/missing", "Missing"))

        _, _, result = await explore(hash_site)

        assert result.view_count == 3
        assert result.ok
        [error] = result.errors
        assert error.kind == ErrorKind.NAVIGATION_ERROR
        assert error.key == "#/missing"

    @pytest.mark.asyncio
    async def test_timeout_is_recorded(self, hash_site):
        hash_site.timeouts.add("#/about")

        _, _, result = await explore(hash_site)

        assert [r.key for r in result.records] == ["/", "#/colors"]
        assert [e.kind for e in result.errors] == [ErrorKind.NAVIGATION_TIMEOUT]

    @pytest.mark.asyncio
    async def test_extraction_failure_drops_view(self, hash_site):
        hash_site.broken.add("about")

        _, _, result = await explore(hash_site)

        assert [r.key for r in result.records] == ["/", "#/colors"]
        assert result.errors[0].kind == ErrorKind.CAPTURE_EXTRACTION
        assert result.errors[0].key == "#/about"
        assert any("extraction failure" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_address_action_without_address_is_skipped(self, hash_site):
        scheduler = ExplorationScheduler(make_config(), FakeSurface(hash_site))
        scheduler.frontier.push(
            NavigationAction(kind=ActionKind.ADDRESS, label="Broken", key_hint="#/broken")
        )

        result = await scheduler.run()

        assert [r.key for r in result.records] == ["/", "#/colors", "#/about"]
        assert any(w.startswith("Address action without an address") for w in result.warnings)

    @pytest.mark.asyncio
    async def test_ignored_fragment_load_falls_back_to_control(self):
        site = FakeSite(
            views={
                "home": FakeView(
                    "Home",
                    ["Design System"],
                    links=[("#/colors", "Colors")],
                    controls=[FakeControl("Colors", "colors", address="#/colors")],
                ),
                "colors": FakeView("Colors", ["Colors"]),
            },
            routes={"/": "home", "#/colors": "colors"},
            ignore_fragment_loads=True,
        )

        _, surface, result = await explore(site)

        assert [r.key for r in result.records] == ["/", "#/colors"]
        assert result.records[1].replay_labels == ("Colors",)
        assert result.records[1].fingerprint == Fingerprint(headings=("Colors",))
        assert surface.activations == ["Colors"]


class TestControlExploration:
    @pytest.mark.asyncio
    async def test_content_change_gets_synthetic_key(self):
        site = FakeSite(
            views={
                "home": FakeView(
                    "Home", ["Design System"], controls=[FakeControl("Overview", "ov")]
                ),
                "ov": FakeView("Home", ["Overview"], ["What the system covers."]),
            },
            routes={"/": "home"},
        )

        _, _, result = await explore(site)

        overview = result.records[1]
        assert overview.key == "#/overview"
        assert overview.transition == TransitionKind.CONTENT_CHANGED
        assert overview.source_address == BASE_URL
        assert overview.replay_labels == ("Overview",)
        assert overview.breadcrumb_label == "Overview"

    @pytest.mark.asyncio
    async def test_derived_key_colliding_with_landing_is_dropped(self):
        site = FakeSite(
            views={
                "landing": FakeView("Home", ["Overview"], links=[("/", "Home")]),
                "root": FakeView(
                    "Home", ["Design System"], controls=[FakeControl("Overview", "other")]
                ),
                "other": FakeView("Home", ["Something else"]),
            },
            routes={"#/overview": "landing", "/": "root"},
        )

        _, surface, result = await explore(site, base_url=BASE_URL + "#/overview")

        assert [r.key for r in result.records] == ["#/overview", "/"]
        assert result.records[0].fingerprint == Fingerprint(headings=("Overview",))
        assert surface.activations == ["Overview"]
        assert any(
            w.startswith("Derived key collides with the landing view") for w in result.warnings
        )
        assert result.rejections == []

    @pytest.mark.asyncio
    async def test_address_change_uses_observed_key(self):
        site = FakeSite(
            views={
                "home": FakeView(
                    "Home", ["Design System"], controls=[FakeControl("Guide", "guide", "#/docs")]
                ),
                "guide": FakeView("Guide", ["Guide"]),
            },
            routes={"/": "home", "#/docs": "guide"},
        )

        _, _, result = await explore(site)

        assert result.records[1].key == "#/docs"
        assert result.records[1].replay_labels == ()

    @pytest.mark.asyncio
    async def test_duplicate_content_is_rejected(self):
        site = FakeSite(
            views={
                "home": FakeView(
                    "Home",
                    ["Design System"],
                    controls=[FakeControl("First", "one"), FakeControl("Second", "two")],
                ),
                "one": FakeView("Home", ["Shared"]),
                "two": FakeView("Home", ["Shared"]),
            },
            routes={"/": "home"},
        )

        scheduler, _, result = await explore(site)

        assert len(scheduler.store) == 2
        [rejection] = result.rejections
        assert rejection.key == "#/second"
        assert rejection.outcome == InsertOutcome.DUPLICATE_FINGERPRINT
        assert result.duplicate_count == 1

    @pytest.mark.asyncio
    async def test_no_op_control_is_skipped(self):
        site = FakeSite(
            views={
                "home": FakeView("Home", ["Design System"], controls=[FakeControl("Docs", "home")])
            },
            routes={"/": "home"},
        )

        _, surface, result = await explore(site)

        assert result.view_count == 1
        assert result.rejections == []
        assert surface.activations == ["Docs"]

    @pytest.mark.asyncio
    async def test_backtracks_by_replaying_labels(self):
        _, surface, result = await explore(component_site())

        assert [r.key for r in result.records] == [
            "/",
            "#/components",
            "#/colors",
            "#/components/badge",
        ]
        assert surface.activations == [
            "Components",
            "Colors",
            "Components",
            "Badge Small status indicators",
        ]
        badge = result.records[3]
        assert badge.breadcrumb_label == "Components/Badge"
        assert badge.replay_labels == ("Components", "Badge Small status indicators")
        assert badge.depth == 2

    @pytest.mark.asyncio
    async def test_unrestorable_view_is_closed(self):
        class ForgetfulSurface(FakeSurface):
            async def activate_control(self, label):
                if label == "Components" and label in self.activations:
                    return False
                return await super().activate_control(label)

        site = component_site()

        _, _, result = await explore(site, ForgetfulSurface(site))

        assert [r.key for r in result.records] == ["/", "#/components", "#/colors"]
        assert any(w.startswith("Cannot return to view") for w in result.warnings)
        assert result.ok

    @pytest.mark.asyncio
    async def test_chrome_labels_are_not_reexplored(self):
        site = FakeSite(
            views={
                "home": FakeView(
                    "Home",
                    ["Design System"],
                    controls=[FakeControl("Colors", "colors", in_chrome=True)],
                ),
                "colors": FakeView(
                    "Home",
                    ["Colors"],
                    controls=[
                        FakeControl("Colors", "colors", in_chrome=True),
                        FakeControl("Shades", "shades"),
                    ],
                ),
                "shades": FakeView("Home", ["Shades"]),
            },
            routes={"/": "home"},
        )

        _, surface, result = await explore(site)

        assert surface.activations == ["Colors", "Shades"]
        assert result.records[-1].key == "#/colors/shades"
        assert result.records[-1].breadcrumb_label == "Colors/Shades"

    @pytest.mark.asyncio
    async def test_depth_limit_stops_control_enumeration(self):
        _, surface, result = await explore(component_site(), max_depth=1)

        assert [r.key for r in result.records] == ["/", "#/components", "#/colors"]
        assert "Badge Small status indicators" not in surface.activations

    @pytest.mark.asyncio
    async def test_spent_view_budget_closes_origin(self):
        site = FakeSite(
            views={
                "home": FakeView(
                    "Home", ["Design System"], controls=[FakeControl("Overview", "ov")]
                ),
                "ov": FakeView("Home", ["Overview"]),
            },
            routes={"/": "home"},
        )

        _, surface, result = await explore(site, view_budget_seconds=-1)

        assert result.view_count == 1
        assert surface.activations == []
        assert any("budget" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_wall_clock_budget_is_fatal_but_keeps_records(self, hash_site):
        _, _, result = await explore(hash_site, max_duration_seconds=-1)

        assert [r.key for r in result.records] == ["/"]
        assert "wall-clock" in result.fatal_error
