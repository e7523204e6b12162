from rspi_recorder.cli import main

if __name__ == "__main__":
    main()
