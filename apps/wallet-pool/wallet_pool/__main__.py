from .pool import main

main()
