from gpx_tool.cli import main

main()
