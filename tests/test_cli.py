"""
End-to-end runs of the command-line entry point against a stub make.
"""

import json

import pytest

from conftest import read_log
from cv_linesearch.cli import EXIT_INTERRUPTED, build_parser, main


@pytest.fixture
def cli_args(tmp_path, stub_make, oracle_files):
    definition = tmp_path / "ls.param.def"
    definition.write_text("e 0.1 0.01 0.1 1\nc 1 1\n", encoding="utf-8")
    output = tmp_path / "model.param"
    args = [
        "--fa", str(oracle_files["data"]),
        "--param", str(definition),
        "--mf", oracle_files["makefile"],
        "--bindir", str(oracle_files["bindir"]),
        "--of", str(output),
        "--tmpdir", str(oracle_files["scratch"]),
        "--make", str(stub_make),
    ]
    return args, output


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args(
            ["--data", "train.fa", "--param", "p", "--mf", "Makefile", "--of", "out.param"]
        )
        assert args.max_rounds == 5
        assert args.min_improvement == 0.01
        assert args.initial_score == 0.0
        assert not args.sgdopt
        assert args.workers == 1

    def test_mandatory_options(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--fa", "train.fa"])


class TestMain:
    def test_writes_final_parameters(self, cli_args, oracle_files):
        args, output = cli_args

        assert main(args) == 0

        # every candidate scores the same, so the first one is kept
        assert output.read_text(encoding="utf-8") == "e 0.01\nc 1\n"
        assert list(oracle_files["scratch"].iterdir()) == []

    def test_output_keeps_declared_spelling(self, cli_args, tmp_path):
        args, output = cli_args
        definition = tmp_path / "spelled.param.def"
        definition.write_text("e 0.10 0.010 0.10 1e0\nc 1 1\n", encoding="utf-8")
        args[args.index("--param") + 1] = str(definition)

        assert main(args) == 0

        assert output.read_text(encoding="utf-8") == "e 0.010\nc 1\n"
        assert "PARAM e 0.010" in read_log(tmp_path)

    def test_missing_data_file(self, cli_args, tmp_path):
        args, output = cli_args
        args[args.index("--fa") + 1] = str(tmp_path / "absent.fa")

        assert main(args) == 1
        assert not output.exists()

    def test_unreadable_oracle_output(self, cli_args, oracle_files, monkeypatch, caplog):
        args, output = cli_args
        monkeypatch.setenv("CV_SCORE", "garbage")

        assert main(args) == 1
        assert not output.exists()
        assert list(oracle_files["scratch"].iterdir()) == []
        assert "could not parse" in caplog.text

    def test_history_export(self, cli_args, tmp_path):
        args, output = cli_args
        history = tmp_path / "runs" / "history"

        assert main(args + ["--history", str(history), "--workers", "2"]) == 0

        assert (tmp_path / "runs" / "history.csv").is_file()
        evaluations = json.loads((tmp_path / "runs" / "history.json").read_text(encoding="utf-8"))
        assert len(evaluations) == 6
        summary = json.loads((tmp_path / "runs" / "history_summary.json").read_text(encoding="utf-8"))
        assert summary["parameters"] == {"e": 0.01, "c": 1}
        assert summary["rounds"] == 2
        assert summary["evaluations"] == 3

    def test_sgdopt_reads_back_delegated_parameters(self, tmp_path, cli_args, monkeypatch):
        args, output = cli_args
        definition = tmp_path / "sgd.param.def"
        definition.write_text("R 1 1 2 3 4\nD 2 1 2 3 4 5 6\nc 1 1 10\n", encoding="utf-8")
        args[args.index("--param") + 1] = str(definition)
        monkeypatch.setenv("REWRITE", "R 2\nD 3")

        assert main(args + ["--sgdopt"]) == 0

        # c is carried over from the submitted file, which the rewrite drops
        assert output.read_text(encoding="utf-8") == "R 2\nD 3\nc 1\n"

    def test_termination_signal(self, cli_args, oracle_files, monkeypatch):
        args, output = cli_args
        monkeypatch.setenv("KILL_PARENT", "1")

        assert main(args) == EXIT_INTERRUPTED
        assert not output.exists()
        assert list(oracle_files["scratch"].iterdir()) == []
