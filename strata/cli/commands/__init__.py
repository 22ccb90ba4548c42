"""CLI command implementations (imported lazily by ``strata.cli.__main__``)."""
