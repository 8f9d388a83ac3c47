from __future__ import annotations

from fprov.services.provisioning.tables import render_table


def test_headers_print_without_rows():
    out = render_table(["Version", "Repository", "Repository URL", "State"], [])
    assert out.splitlines() == [
        "Version | Repository | Repository URL | State",
        "--------+------------+----------------+------",
    ]


def test_columns_are_padded():
    out = render_table(["Name", "State"], [("http", "Started"), ("jetty-server", "Uninstalled")])
    lines = out.splitlines()
    assert lines[0] == "Name         | State"
    assert lines[1] == "-------------+------------"
    assert lines[2] == "http         | Started"
    assert lines[3] == "jetty-server | Uninstalled"
