"""Run the kustodian command line tool."""

from kustodian.tool.kustodian import main

main()
