from sqlite_watcher.cli import main

main()
