from atmfjstc.lib.obby_file.cli import main


main()
