from kdd.cli import main

main()
