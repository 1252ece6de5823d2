from toolgate.cli import main

main()
