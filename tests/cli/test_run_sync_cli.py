"""
Tests for argument handling of the synchronization command.
"""

from scripts.run_sync import build_parser, options_from_args


class TestRunSyncArguments:
    def test_defaults_come_from_settings(self):
        options, filters = options_from_args(build_parser().parse_args([]))
        assert options.limit is None
        assert options.download_images is True
        assert filters is None

    def test_flags(self):
        args = build_parser().parse_args(
            ["--limit", "10", "--batch-size", "2", "--no-images", "--no-changes", "--mark-inactive"]
        )
        options, _ = options_from_args(args)
        assert options.limit == 10
        assert options.batch_size == 2
        assert options.download_images is False
        assert options.track_changes is False
        assert options.mark_inactive is True

    def test_filters(self):
        args = build_parser().parse_args(["--ref", "261", "--city", "Cali"])
        _, filters = options_from_args(args)
        assert filters.to_filtros() == {"ref": 261, "ciudad": "Cali"}
