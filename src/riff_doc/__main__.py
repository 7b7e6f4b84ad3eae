from riff_doc.cli import main


main()
