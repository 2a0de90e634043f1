from friend_club.server import run

if __name__ == "__main__":
    run()
