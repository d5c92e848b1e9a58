from multiplayer.tests.mocks.link import MockLink, MockLinkFactory

__all__ = ["MockLink", "MockLinkFactory"]
