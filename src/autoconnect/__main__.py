from autoconnect.main import main

main()
