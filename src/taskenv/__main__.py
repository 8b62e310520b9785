from taskenv.cli import main

main()
